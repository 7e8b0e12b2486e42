"""
Shared fixtures: a small deterministic game with a fast local cluster.
"""

import pytest

from backend.app.core import Coordinate, GameConfig, TileKind, create_game


# Tiles not listed are empty
LAYOUT = {
    Coordinate(1, 0): (TileKind.TREASURE, 30),
    Coordinate(0, 1): (TileKind.TRAP, 15),
    Coordinate(3, 3): (TileKind.TREASURE, 10),
    Coordinate(6, 6): (TileKind.TRAP, 20),
}

WALLET_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
WALLET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def fast_config(**overrides) -> GameConfig:
    config = GameConfig(compute_latency=0.01, action_timeout=2.0)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def engine():
    """Fresh game with the fixed layout"""
    return create_game(fast_config(), layout=LAYOUT)


@pytest.fixture
def place(engine):
    """Register a wallet (if needed) and put it on a tile"""
    def _place(wallet: str, x: int, y: int):
        engine.register(wallet)

        def move(record):
            record.position = Coordinate(x, y)
        engine.store.mutate(wallet, move)
    return _place
