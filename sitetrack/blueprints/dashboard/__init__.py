"""
Dashboard blueprint package.

Exposes the Blueprint object imported in sitetrack.create_app().
The actual routes and logic are in routes.py.
"""

from .routes import dashboard_bp  # noqa: F401
