"""Command-line interface for ability-pipelines.

Enables execution via ``python -m ability_pipelines`` or a plain
``ability-pipelines`` command after install.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ability_pipelines.builtin import describe_capabilities, register_pipeline_capabilities
from ability_pipelines.capabilities import CapabilityRegistry
from ability_pipelines.errors import PipelineError
from ability_pipelines.models import ExecutionLimits

# ── Human-readable help strings ──────────────────────────────────────────────
# Written to teach both humans and agents how and when to use this tool.

_TOP_DESCRIPTION = """\
Declarative pipeline executor for capability workflows.

Loads a pipeline defined in JSON or YAML and executes its steps against a
shared variable context. Steps call registered capabilities (ability),
reshape data (transform), branch (conditional), iterate (loop), fan out with
per-branch failure isolation (parallel), nest (sub_pipeline), and recover
from errors (try_catch).

Use this tool when you need to RUN or VALIDATE a pipeline file, or to list
what pipelines can use.
"""

_TOP_EPILOG = """\
For a machine-readable JSON description of this CLI (commands, argument
schemas, output shapes, examples):

  ability-pipelines schema

Quick examples:
  ability-pipelines run pipeline.json --context limit=10
  ability-pipelines run pipeline.yaml --registry myapp.caps:registry
  ability-pipelines validate pipeline.yaml --registry myapp.caps:registry
  ability-pipelines capabilities --include transforms
"""

_RUN_DESCRIPTION = """\
Execute a pipeline file end-to-end and emit the result as JSON.

Loads the pipeline, merges the initial context (--context flags take
precedence over --context-json), then runs every step in order. The last
top-level step's value is returned in the "output" field.
"""

_RUN_EPILOG = """\
Output schema (JSON written to stdout, or to the --output file):

  {
    "success": true,
    "output":  <any>           -- value of the last top-level step
    "context": {...}           -- final context variables
    "step_results": [
      {
        "index":       <int>,  -- position in the top-level step list
        "step_type":   <str>,  -- ability, transform, loop, ...
        "value":       <any>,  -- the step's result
        "duration_ms": <num>   -- wall-clock milliseconds for this step
      }
    ],
    "stats": {
      "steps_executed": <int>, -- every step, nested ones included
      "steps_by_type":  {...},
      "errors":         [...], -- errors raised, contained ones included
      "duration_ms":    <num>,
      "tokens_used":    <int>  -- sensitive values tokenized (null with --no-tokenize)
    }
  }

Context value parsing:
  --context KEY=VALUE tries JSON parsing first (so integers, booleans, arrays,
  and objects work without extra quoting), then falls back to a plain string.
  --context-json FILE must contain a JSON object.

Capabilities:
  --registry MODULE:ATTR imports ATTR from MODULE. ATTR is a
  CapabilityRegistry, or a callable returning one. The pipeline/* meta
  capabilities are always registered.

Common errors:
  PipelineLoadError  -- file not found or not a pipeline
  ValidationError    -- context doesn't match the pipeline's input schema
  StepExecutionError -- a step failed and nothing caught it
"""

_VALIDATE_DESCRIPTION = """\
Statically validate a pipeline file without executing it.

No capability is called. Checks: step types and required/unknown keys at
every nesting level, condition operators, JSONata and Jinja2 syntax, unbound
$references, circular output dependencies and, with --registry, unknown
capability names.
"""

_VALIDATE_EPILOG = """\
Diagnostic output format (written to stderr on failure):
  [error]   path.field: message  -- blocks execution; must be fixed
  [warning] path.field: message  -- may cause issues at runtime

Exit codes:
  0 -- pipeline is valid; safe to pass to "ability-pipelines run"
  1 -- one or more errors found; do not attempt to run
"""

_CAPABILITIES_DESCRIPTION = """\
Print what pipelines can use: step types, transform operations, comparison
operators, registered capabilities and quick examples, as JSON.
"""

_SCHEMA_DESCRIPTION = """\
Print a machine-readable JSON description of this CLI to stdout.

Designed for agents and tooling that need to understand what commands are
available, what arguments they accept, and what output they produce.
"""


# ── Structured JSON schema (for `ability-pipelines schema`) ──────────────────

def _cli_schema() -> dict[str, Any]:
    """Return a structured JSON description of the entire CLI."""
    registry_arg = {
        "type": "string",
        "format": "MODULE:ATTR",
        "required": False,
        "description": (
            "Import a CapabilityRegistry (or a callable returning one) that "
            "ability steps call into."
        ),
        "examples": ["myapp.capabilities:registry", "myapp.capabilities:build_registry"],
    }
    return {
        "tool": "ability-pipelines",
        "description": (
            "Declarative pipeline executor. Runs or validates JSON/YAML "
            "pipeline files that chain capability calls, data transforms, "
            "branching, loops and error handling over a shared context."
        ),
        "commands": [
            {
                "name": "run",
                "description": "Execute a pipeline file and emit the result as JSON.",
                "arguments": {
                    "pipeline": {
                        "type": "string",
                        "format": "file path",
                        "required": True,
                        "description": "Path to the pipeline JSON or YAML file.",
                    },
                    "--context": {
                        "short": "-c",
                        "type": "string",
                        "format": "KEY=VALUE",
                        "repeatable": True,
                        "required": False,
                        "description": "Initial context variable; VALUE is JSON-parsed when possible.",
                    },
                    "--context-json": {
                        "type": "string",
                        "format": "file path",
                        "required": False,
                        "description": "JSON object whose keys become initial context variables.",
                    },
                    "--registry": registry_arg,
                    "--max-steps": {"type": "integer", "required": False, "default": 1000},
                    "--max-depth": {"type": "integer", "required": False, "default": 10},
                    "--timeout": {"type": "number", "required": False, "default": 300},
                    "--no-tokenize": {
                        "type": "boolean",
                        "required": False,
                        "description": "Don't tokenize sensitive context fields.",
                    },
                    "--output": {
                        "short": "-o",
                        "type": "string",
                        "format": "file path",
                        "required": False,
                        "description": "Write the JSON result to this file instead of stdout.",
                    },
                    "--log-dir": {
                        "type": "string",
                        "format": "directory path",
                        "required": False,
                        "description": "Directory for JSON-lines execution logs (pipeline.log).",
                    },
                },
                "exit_codes": {
                    "0": "success; JSON output has been written",
                    "1": "load error, input validation error, or uncaught step error",
                },
                "examples": [
                    {"command": "ability-pipelines run pipeline.json --context limit=10"},
                    {"command": "ability-pipelines run pipeline.yaml --registry myapp.caps:registry --log-dir ./logs"},
                ],
            },
            {
                "name": "validate",
                "description": "Statically validate a pipeline without executing it.",
                "arguments": {
                    "pipeline": {"type": "string", "format": "file path", "required": True},
                    "--registry": registry_arg,
                },
                "exit_codes": {"0": "pipeline is valid", "1": "one or more errors found"},
                "examples": [{"command": "ability-pipelines validate pipeline.yaml"}],
            },
            {
                "name": "capabilities",
                "description": "Print step types, transforms, operators and registered capabilities.",
                "arguments": {
                    "--include": {
                        "type": "string",
                        "enum": ["step_types", "transforms", "operators", "abilities", "examples"],
                        "repeatable": True,
                        "required": False,
                    },
                    "--registry": registry_arg,
                },
                "exit_codes": {"0": "always succeeds"},
            },
            {
                "name": "schema",
                "description": "Print this machine-readable JSON schema to stdout.",
                "arguments": {},
                "exit_codes": {"0": "always succeeds"},
            },
        ],
        "pipeline_format": {
            "description": (
                "A pipeline is {\"steps\": [...]} (optionally with \"input\", a JSON "
                "Schema for the initial context) or a bare list of steps. Every "
                "step has a \"type\" and an optional \"output\" naming the context "
                "variable that receives its result. Strings of the form $name.path "
                "are references to context variables."
            ),
            "step_types": ["ability", "transform", "conditional", "loop", "parallel", "sub_pipeline", "try_catch"],
            "common_mistakes": [
                "Referencing $name before any step (or the initial context) binds it.",
                "Expecting a variable bound inside a loop or sub_pipeline body to exist after it.",
                "Misspelling a key: unknown keys are configuration errors, not ignored.",
            ],
        },
    }


# ── Argument parser ───────────────────────────────────────────────────────────

def _add_registry_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--registry",
        metavar="MODULE:ATTR",
        help=(
            "Import a CapabilityRegistry (or a callable returning one) from "
            "MODULE. The pipeline/* meta capabilities are always added."
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ability-pipelines",
        description=_TOP_DESCRIPTION,
        epilog=_TOP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command")

    # ── run ──────────────────────────────────────────────────────────────────
    run_p = sub.add_parser(
        "run",
        help="Execute a pipeline and emit the result as JSON",
        description=_RUN_DESCRIPTION,
        epilog=_RUN_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_p.add_argument("pipeline", type=Path, help="Path to the pipeline JSON/YAML file")
    run_p.add_argument(
        "--context", "-c",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help=(
            "Initial context variable. VALUE is JSON-parsed first, then falls "
            "back to a plain string. Repeatable; overrides keys from --context-json."
        ),
    )
    run_p.add_argument(
        "--context-json",
        type=Path,
        metavar="FILE",
        help="JSON file containing an object whose keys become context variables.",
    )
    _add_registry_argument(run_p)
    run_p.add_argument("--max-steps", type=int, metavar="N", help="Maximum steps executed (default: 1000)")
    run_p.add_argument("--max-depth", type=int, metavar="N", help="Maximum nesting depth (default: 10)")
    run_p.add_argument("--timeout", type=float, metavar="SECONDS", help="Run time budget (default: 300)")
    run_p.add_argument(
        "--no-tokenize",
        action="store_true",
        help="Leave sensitive context fields (passwords, keys, payment data) untokenized.",
    )
    run_p.add_argument(
        "--output", "-o",
        type=Path,
        metavar="FILE",
        help="Write JSON output to FILE instead of stdout.",
    )
    run_p.add_argument(
        "--log-dir",
        type=Path,
        metavar="DIR",
        help=(
            "Write JSON-lines execution logs to DIR/pipeline.log "
            "(step_start, step_complete, step_error, branch_error, "
            "finally_error, pipeline_complete)."
        ),
    )

    # ── validate ─────────────────────────────────────────────────────────────
    val_p = sub.add_parser(
        "validate",
        help="Statically validate a pipeline without executing it",
        description=_VALIDATE_DESCRIPTION,
        epilog=_VALIDATE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    val_p.add_argument("pipeline", type=Path, help="Path to the pipeline file to validate")
    _add_registry_argument(val_p)

    # ── capabilities ─────────────────────────────────────────────────────────
    cap_p = sub.add_parser(
        "capabilities",
        help="Print what pipelines can use, as JSON",
        description=_CAPABILITIES_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    cap_p.add_argument(
        "--include",
        action="append",
        choices=["step_types", "transforms", "operators", "abilities", "examples"],
        help="Section to include (repeatable; default: all)",
    )
    _add_registry_argument(cap_p)

    # ── schema ───────────────────────────────────────────────────────────────
    sub.add_parser(
        "schema",
        help="Print a machine-readable JSON schema of this CLI to stdout",
        description=_SCHEMA_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    return parser


# ── Command handlers ──────────────────────────────────────────────────────────

def _parse_context(raw: list[str], context_json: Path | None) -> dict[str, Any]:
    """Build the initial context from --context flags and/or --context-json."""
    data: dict[str, Any] = {}

    if context_json is not None:
        with open(context_json) as f:
            loaded = json.load(f)
        if not isinstance(loaded, dict):
            print(
                f"Error: --context-json must contain a JSON object, got {type(loaded).__name__}",
                file=sys.stderr,
            )
            sys.exit(1)
        data.update(loaded)

    for pair in raw:
        if "=" not in pair:
            print(f"Error: --context values must be KEY=VALUE, got {pair!r}", file=sys.stderr)
            sys.exit(1)
        key, value = pair.split("=", 1)
        # Try to parse as JSON for non-string values (numbers, booleans, arrays, objects)
        try:
            data[key] = json.loads(value)
        except json.JSONDecodeError:
            data[key] = value

    return data


def _load_registry(ref: str | None) -> CapabilityRegistry:
    """Resolve ``--registry MODULE:ATTR`` and add the meta capabilities."""
    if ref is None:
        registry = CapabilityRegistry()
    else:
        module_path, _, attr_path = ref.partition(":")
        if not attr_path:
            print(f"Error: --registry must be MODULE:ATTR, got {ref!r}", file=sys.stderr)
            sys.exit(1)
        obj: Any = importlib.import_module(module_path)
        for part in attr_path.split("."):
            obj = getattr(obj, part)
        registry = obj if isinstance(obj, CapabilityRegistry) else obj()
        if not isinstance(registry, CapabilityRegistry):
            print(
                f"Error: {ref!r} did not provide a CapabilityRegistry, got {type(registry).__name__}",
                file=sys.stderr,
            )
            sys.exit(1)

    register_pipeline_capabilities(registry)
    return registry


def _limits(args: argparse.Namespace) -> ExecutionLimits:
    overrides = {
        "max_steps": args.max_steps,
        "max_depth": args.max_depth,
        "timeout": args.timeout,
    }
    try:
        return ExecutionLimits(**{k: v for k, v in overrides.items() if v is not None})
    except PydanticValidationError as e:
        problems = "; ".join(
            f"--{str(err['loc'][0]).replace('_', '-')} {err['msg']}" for err in e.errors()
        )
        print(f"Error: invalid limits: {problems}", file=sys.stderr)
        sys.exit(1)


async def _cmd_run(args: argparse.Namespace) -> int:
    from ability_pipelines import configure_logging, load_pipeline, run_pipeline

    if args.log_dir:
        configure_logging(args.log_dir)

    definition = load_pipeline(args.pipeline)
    context = _parse_context(args.context, args.context_json)
    result = await run_pipeline(
        definition,
        context,
        capabilities=_load_registry(args.registry),
        limits=_limits(args),
        tokenize=not args.no_tokenize,
    )

    text = json.dumps(result.model_dump(), indent=2, default=str)

    if args.output:
        args.output.write_text(text)
        print(f"Output written to {args.output}", file=sys.stderr)
    else:
        print(text)

    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    from ability_pipelines import default_transformations, load_and_validate_pipeline

    capabilities = _load_registry(args.registry) if args.registry else None
    definition, result = load_and_validate_pipeline(
        args.pipeline, capabilities=capabilities, transformations=default_transformations()
    )

    for d in result.warnings if result.ok else result.diagnostics:
        print(f"[{d.severity.value}] {d.path}.{d.field}: {d.message}", file=sys.stderr)

    if result.ok:
        print(f"Pipeline is valid ({len(definition.steps)} steps)")
        return 0

    error_count = len(result.errors)
    warning_count = len(result.warnings)
    print(f"\n{error_count} error(s), {warning_count} warning(s)", file=sys.stderr)
    return 1


def _cmd_capabilities(args: argparse.Namespace) -> int:
    from ability_pipelines import default_transformations

    payload = describe_capabilities(
        _load_registry(args.registry), default_transformations(), args.include
    )
    print(json.dumps(payload, indent=2))
    return 0


def _cmd_schema() -> int:
    print(json.dumps(_cli_schema(), indent=2))
    return 0


# ── Entry point ───────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        if args.command == "run":
            sys.exit(asyncio.run(_cmd_run(args)))
        elif args.command == "validate":
            sys.exit(_cmd_validate(args))
        elif args.command == "capabilities":
            sys.exit(_cmd_capabilities(args))
        elif args.command == "schema":
            sys.exit(_cmd_schema())
    except PipelineError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
