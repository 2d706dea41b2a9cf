"""
API module initialization.

Exports the application factory and the default app.
"""

from .main import app, create_app

__all__ = [
    "app",
    "create_app"
]
