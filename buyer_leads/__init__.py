"""Buyer lead CRM service: validation, persistence and audit history for buyer leads."""

__version__ = "1.0.0"
