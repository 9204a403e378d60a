"""
Use Case Workflow Core Service
SQLAlchemy extension instance shared by all models.

Usage:
    from core_service.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
