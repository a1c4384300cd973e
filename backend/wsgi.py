from homebase import create_app

app = create_app()
