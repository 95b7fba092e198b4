# backend/wsgi.py
from dealernet import create_app

app = create_app()
