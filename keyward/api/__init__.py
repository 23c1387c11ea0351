"""
KEYWARD REST API.

FastAPI-based REST API for accounts, sessions and two-factor authentication.
"""
from .main import app, create_app

__all__ = ["app", "create_app"]
