"""WSGI entry point (``flask --app pos_api.wsgi run``)."""

from pos_api.app import create_app

app = create_app()
