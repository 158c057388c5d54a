"""
HTTP routes for Let's Vibe.
"""
