"""Utility helpers shared across the package."""

from .logging import get_log_path, register_secret, setup_logging

__all__ = ["get_log_path", "register_secret", "setup_logging"]
