# =============================================================================
# Buried Treasure - Backend Package
# =============================================================================
"""
Buried Treasure Backend

Server-side authority for a hidden-information grid exploration game.
Players move, explore, dig and bury loot on a 10x10 map whose contents
are only ever revealed through a secure computation boundary.
"""

__version__ = "0.1.0"
