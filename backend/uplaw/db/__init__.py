# uplaw/db/__init__.py

"""
Database Module

Contains SQLAlchemy models, Pydantic schemas, and database configuration.
"""

from uplaw.db.database import Base, build_session_factory, create_db_engine, get_db, init_db
from uplaw.db import models, schemas

__all__ = [
    'Base',
    'build_session_factory',
    'create_db_engine',
    'get_db',
    'init_db',
    'models',
    'schemas'
]
