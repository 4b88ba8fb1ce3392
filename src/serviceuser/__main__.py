from serviceuser.cli.main import cli

cli(prog_name="serviceuser")
