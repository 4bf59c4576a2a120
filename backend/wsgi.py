# backend/wsgi.py
from labstock import create_app

app = create_app()
