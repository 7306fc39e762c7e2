from report_writer.cli import app

app()
