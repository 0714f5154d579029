"""
Contractor Compliance Decision Engine
Model package.

``db`` is the shared Flask-SQLAlchemy handle; the remaining modules hold
the plain dataclass domain objects exchanged between assistants, the
scoring engine and the action services.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
