from app.hse import create_app

app = create_app()
