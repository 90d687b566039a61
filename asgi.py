"""
asgi.py -- ASGI entry point for the Gatehouse reference API.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()
