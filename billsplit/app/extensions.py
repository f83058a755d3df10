"""
extensions.py — Flask extension singletons.

The objects are created here without an app and bound inside create_app()
via init_app(), so tests can build as many isolated apps as they need.

    from billsplit.app.extensions import db, ma
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Request schemas in app/schemas/ subclass marshmallow.Schema, not ma.Schema:
# ma.Schema needs an app context and the unit tests run without one.
ma = Marshmallow()
