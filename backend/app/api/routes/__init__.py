"""
Routes Module

Contains API route definitions.
"""

from . import game, websocket

__all__ = ['game', 'websocket']
