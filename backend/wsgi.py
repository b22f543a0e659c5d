# backend/wsgi.py
from stockmaster import create_app

app = create_app()
