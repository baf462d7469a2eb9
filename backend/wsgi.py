# backend/wsgi.py
from attendguard import create_app

app = create_app()
