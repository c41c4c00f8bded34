from stagerun.cli import cli

cli()
