from ability_pipelines.cli import main

main()
