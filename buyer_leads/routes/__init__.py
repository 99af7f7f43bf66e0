# buyer_leads/routes/__init__.py
"""
API route handlers organized by domain.
"""

from buyer_leads.routes.auth import router as auth_router
from buyer_leads.routes.buyers import my_leads_router
from buyer_leads.routes.buyers import router as buyers_router
from buyer_leads.routes.health import router as health_router

__all__ = [
    "auth_router",
    "buyers_router",
    "health_router",
    "my_leads_router",
]
