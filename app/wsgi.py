from app.issuetracker import create_app

app = create_app()
