"""
Keyward - account authentication service.

Password login, TOTP two-factor authentication and single-use recovery
codes behind a small FastAPI surface, with JWT session tokens.
"""

__version__ = "0.1.0"
