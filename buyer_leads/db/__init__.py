# buyer_leads/db/__init__.py
"""
Database package for SQLAlchemy setup, session management, and base models.
"""

from buyer_leads.db.base import Base
from buyer_leads.db.session import get_session, transaction

__all__ = [
    "Base",
    "get_session",
    "transaction",
]
