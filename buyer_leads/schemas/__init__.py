# buyer_leads/schemas/__init__.py
"""
Pydantic schemas for request/response validation and serialization.
"""
