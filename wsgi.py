"""
Production WSGI entry point.

Usage:
    gunicorn -w 2 -k gthread -b 0.0.0.0:$PORT wsgi:app
"""

from gardenstudio import create_app

app = create_app()
