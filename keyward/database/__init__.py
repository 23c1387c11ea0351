"""
Database access for Keyward.

This package provides:
- auth_db: SQLAlchemy-backed store for users, 2FA records and recovery codes
"""
from .auth_db import AuthDB

__all__ = ["AuthDB"]
