# backend/wsgi.py
from smart_retail import create_app

app = create_app()
