# =============================================================================
# Buried Treasure - Command Line Interface
# =============================================================================
"""
Simple CLI for testing and playing the game against a local engine.
"""

import asyncio
import random
import uuid
from typing import Dict, Optional

from backend.app.client import GameClient
from backend.app.core import (
    ActionOutcome, ActionType, Coordinate, GameConfig, GameEngine, TileKind, create_game,
)


HELP = """
Commands:
  move X Y          Step onto a neighbouring tile
  explore X Y       Reveal a tile (yours or a neighbour)
  dig X Y           Dig up a tile, map and buried loot at once
  bury X Y AMOUNT   Bury gold on a tile
  state             Show your stats
  map               Show the grid
  log               Show recent activity
  help              Show this help
  quit              Leave the game
"""


def print_header():
    """Print game header"""
    print("\n" + "=" * 60)
    print("   BURIED TREASURE")
    print("   Explore, dig and bury on a hidden map")
    print("=" * 60 + "\n")


def print_state(client: GameClient):
    """Print current player state"""
    record = client.state
    if record is None:
        print("Not connected")
        return

    print(f"\n{'='*50}")
    print(f"Position {record.position} | Gold {record.gold} | "
          f"Health {record.health}/{record.max_health}")
    print(f"{'='*50}")
    stats = record.stats
    print(f"  Tiles explored:  {stats.tiles_explored}")
    print(f"  Treasures found: {stats.treasures_found}")
    print(f"  Traps triggered: {stats.traps_triggered}")
    print(f"  Loot buried:     {stats.loot_buried}")
    print(f"  Loot dug up:     {stats.loot_dug_up}")


def print_map(client: GameClient, revealed: Dict[Coordinate, TileKind], grid_size: int):
    """
    Print the grid from the player's point of view.

    @ you, $ treasure, x trap, . empty, B your loot, ? unexplored
    """
    record = client.state
    if record is None:
        return

    print("\n    " + " ".join(str(x) for x in range(grid_size)))
    for y in range(grid_size):
        row = []
        for x in range(grid_size):
            coord = Coordinate(x, y)
            if coord == record.position:
                row.append("@")
            elif coord in record.buried_tiles:
                row.append("B")
            elif coord in revealed:
                row.append(revealed[coord].symbol)
            elif record.has_explored(coord):
                row.append(".")
            else:
                row.append("?")
        print(f"  {y} " + " ".join(row))


def remember(outcome: ActionOutcome, target: Coordinate, revealed: Dict[Coordinate, TileKind]):
    """Keep what explore told us so the map can show it"""
    if outcome.success and outcome.action_type == ActionType.EXPLORE:
        revealed[target] = TileKind[outcome.data["tileType"].upper()]


def run_command(client: GameClient, line: str,
                revealed: Dict[Coordinate, TileKind]) -> Optional[ActionOutcome]:
    """Parse and run one action command"""
    parts = line.split()
    try:
        action_type = ActionType[parts[0].upper()]
        numbers = [int(p) for p in parts[1:]]
    except (KeyError, ValueError):
        print("Unknown command, type 'help'")
        return None

    expected = 3 if action_type == ActionType.BURY else 2
    if len(numbers) != expected:
        args = "X Y AMOUNT" if action_type == ActionType.BURY else "X Y"
        print(f"Usage: {action_type} {args}")
        return None

    print("  ... waiting for the computation cluster")
    calls = {
        ActionType.MOVE: client.move,
        ActionType.EXPLORE: client.explore,
        ActionType.DIG: client.dig,
        ActionType.BURY: client.bury,
    }
    outcome = asyncio.run(calls[action_type](*numbers))
    remember(outcome, Coordinate(numbers[0], numbers[1]), revealed)
    marker = "→" if outcome.success else "✗"
    print(f"\n{marker} {outcome.message}")
    if outcome.retryable:
        print("  (safe to retry)")
    return outcome


def interactive_game(engine: Optional[GameEngine] = None):
    """Run an interactive game session"""
    print_header()

    engine = engine or create_game(GameConfig.from_env())
    wallet = input("Wallet address [random]: ").strip() or uuid.uuid4().hex
    client = GameClient(engine, wallet)
    client.connect()
    revealed: Dict[Coordinate, TileKind] = {}

    print(f"\nJoined game {engine.game_id} as {wallet[:8]}...")
    print(HELP)

    while True:
        print_map(client, revealed, engine.config.grid_size)
        line = input("\n> ").strip()
        if not line:
            continue

        command = line.split()[0].lower()
        if command in ("q", "quit"):
            print("Goodbye!")
            break
        elif command == "help":
            print(HELP)
        elif command == "state":
            client.refresh()
            print_state(client)
        elif command == "map":
            continue
        elif command == "log":
            for entry in client.activity:
                print(f"  {entry}")
        else:
            run_command(client, line, revealed)

        if client.state is not None and not client.state.is_alive:
            print("\nYou have no health left. Game over.")
            break


async def _random_walk(engine: GameEngine, client: GameClient, steps: int, rng: random.Random):
    for _ in range(steps):
        action_type = rng.choice([ActionType.MOVE, ActionType.EXPLORE, ActionType.DIG])
        targets = engine.get_valid_targets(client.identity, action_type)
        if not targets:
            continue
        target = rng.choice(targets)
        call = {
            ActionType.MOVE: client.move,
            ActionType.EXPLORE: client.explore,
            ActionType.DIG: client.dig,
        }[action_type]
        await call(target.x, target.y)
        if not client.state.is_alive:
            break


def demo_game(steps: int = 20, seed: int = 7):
    """Run a quick demo with random actions on a fast local cluster"""
    print_header()
    print("Running random game demo...")

    config = GameConfig(map_seed=seed, compute_latency=0.01)
    engine = create_game(config)
    client = GameClient(engine, "demo-" + uuid.uuid4().hex[:8])
    client.connect()

    asyncio.run(_random_walk(engine, client, steps, random.Random(seed)))

    print_state(client)
    print(f"\nRecent activity:")
    for entry in list(client.activity)[-10:]:
        print(f"  {entry}")
    print(f"\nGame statistics:")
    for key, value in engine.get_stats().items():
        print(f"  {key}: {value}")


def main():
    """Main entry point"""
    print_header()

    print("Options:")
    print("  1. Play Interactive Game")
    print("  2. Run Demo (Random Walk)")
    print("  3. Exit")

    choice = input("\nChoice [1-3]: ").strip()

    if choice == "1":
        interactive_game()
    elif choice == "2":
        demo_game()
    elif choice == "3":
        print("Goodbye!")
    else:
        print("Invalid choice")


if __name__ == "__main__":
    main()
