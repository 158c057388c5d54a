"""
Let's Vibe - collaborative party playlist backend.
"""

__version__ = "0.1.0"
