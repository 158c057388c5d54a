"""
Playback reconciliation for Let's Vibe.
"""

from .reconciler import PlaybackReconciler
from .registry import ReconcilerRegistry, registry
from .players import build_reconciler, player_for_session

__all__ = ['PlaybackReconciler', 'ReconcilerRegistry', 'registry', 'build_reconciler', 'player_for_session']
