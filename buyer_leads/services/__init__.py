# buyer_leads/services/__init__.py
"""
Business logic services organized by domain functionality.
"""
