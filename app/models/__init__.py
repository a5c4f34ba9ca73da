"""
Video Production CRM
Shared SQLAlchemy instance.

Every model module imports ``db`` from here; ``create_app`` binds it to the
Flask application via ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
