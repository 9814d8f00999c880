from replcheck.cli.app import app

app()
