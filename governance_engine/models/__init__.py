"""
Governance Review Engine
SQLAlchemy extension instance shared by every model module.

Usage:
    from governance_engine.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
