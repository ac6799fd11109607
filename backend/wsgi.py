# backend/wsgi.py
from fuelsync import create_app

app = create_app()
