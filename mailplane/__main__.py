from mailplane.main import cli

cli()
