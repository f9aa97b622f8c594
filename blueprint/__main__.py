from blueprint.main import cli

cli()
