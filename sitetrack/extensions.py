"""
Flask extension singletons for SiteTrack.

Bound to the app in create_app():
- db            models and the ledger's unit of work
- migrate       `flask db ...` schema migrations
- login_manager session auth; its unauthorized handler answers with JSON 401
- csrf          API clients send the token from /auth/csrf-token as X-CSRFToken
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
