from .manage import app

app()
