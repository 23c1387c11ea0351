"""
Shared utilities for Keyward.

This package provides:
- Configuration management
- Secrets management
- Log-safe masking helpers
"""
from .secrets import get_secret, get_required_secret, mask_secret, mask_email
from .config import AppConfig

__all__ = ["get_secret", "get_required_secret", "mask_secret", "mask_email", "AppConfig"]
