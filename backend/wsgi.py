# backend/wsgi.py
from pos_terminal import create_app

app = create_app()
