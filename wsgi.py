"""
WSGI / Flask-Migrate entry point.

Usage:
    FLASK_APP=wsgi.py flask db upgrade
    gunicorn wsgi:app
"""

from governance_engine import create_app

app = create_app()
