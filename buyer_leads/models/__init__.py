# buyer_leads/models/__init__.py
"""
SQLAlchemy ORM models for database entities.
"""

from buyer_leads.models.lead import Lead, LeadHistory
from buyer_leads.models.user import User

__all__ = [
    "Lead",
    "LeadHistory",
    "User",
]
