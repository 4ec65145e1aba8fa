from app.meyden import create_app

app = create_app()
