"""Jinja2 template rendering for the ``template`` transformation.

Templates use {{ args.field }} syntax, where ``args`` is the transform
step's resolved input. StrictUndefined ensures missing variables blow up
immediately instead of silently rendering empty strings.
"""

from __future__ import annotations

from typing import Any

import jinja2

_ENV = jinja2.Environment(
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=True,
)


def render_template(template_str: str, variables: Any) -> str:
    """Render a Jinja2 template string with *variables* available as ``args``.

    Raises:
        jinja2.TemplateSyntaxError: If the template doesn't parse.
        jinja2.UndefinedError: If the template references a variable
            that doesn't exist in *variables*.
    """
    template = _ENV.from_string(template_str)
    return template.render(args=variables)


def check_template_syntax(template_str: str) -> str | None:
    """Return a syntax error message, or None if the template parses."""
    try:
        _ENV.parse(template_str)
    except jinja2.TemplateSyntaxError as e:
        return str(e)
    return None
