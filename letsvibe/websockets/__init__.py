"""
Realtime updates for Let's Vibe.
"""

from .handlers import broadcast, broadcast_playback, broadcast_queue, init_socketio

__all__ = ['broadcast', 'broadcast_playback', 'broadcast_queue', 'init_socketio']
