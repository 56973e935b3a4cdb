"""
WSGI / Flask CLI entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi snapshot-evm
    flask --app wsgi aggregate-work-packages P-1001
"""

from installplan import create_app

app = create_app()
