# =============================================================================
# Buried Treasure - Game Client
# =============================================================================
"""
Consumer-facing wrappers used by a UI, the CLI or a test harness.

GameClient talks to an in-process GameEngine; HttpGameClient offers the
same calls over the HTTP API. Both allow one call in flight at a time
and refuse a second one locally, without a round trip.
"""

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator, Callable, Deque, Dict, List, Optional

import httpx

from .core.enums import ActionStatus, ActionType, ErrorKind
from .core.data_structures import ActionOutcome, BusyError, GameError, PlayerRecord
from .core.game_engine import GameEngine

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_LOG_SIZE = 50

StateCallback = Callable[[Any], None]


class _ActivityMixin:
    """Busy flag, last error, activity log and state subscribers"""

    def _init_activity(self, log_size: int):
        self._in_flight = False
        self.last_error: Optional[str] = None
        self.activity: Deque[str] = deque(maxlen=log_size)
        self._subscribers: List[StateCallback] = []

    @property
    def is_busy(self) -> bool:
        return self._in_flight

    def log(self, message: str):
        self.activity.append(message)

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """
        Call `callback(state)` whenever the known state changes.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _notify(self, state: Any):
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("State subscriber error")


# =============================================================================
# In-process client
# =============================================================================

class GameClient(_ActivityMixin):
    """
    Wraps a GameEngine for one identity.

    Example usage:
        client = GameClient(engine, wallet)
        client.connect()
        outcome = await client.explore(1, 0)
        print(client.activity[-1])
    """

    def __init__(self, engine: GameEngine, identity: str, log_size: int = DEFAULT_LOG_SIZE):
        self.engine = engine
        self.identity = identity
        self.state: Optional[PlayerRecord] = None
        self.tx: Optional[str] = None
        self._init_activity(log_size)

    def connect(self) -> PlayerRecord:
        """Register (idempotent) and load the initial state"""
        record, self.tx = self.engine.register(self.identity)
        self.log("Connected")
        self._set_state(record)
        return record

    def refresh(self) -> PlayerRecord:
        record = self.engine.get_state(self.identity)
        self._set_state(record)
        return record

    def _set_state(self, record: PlayerRecord):
        changed = self.state is None or self.state.to_dict() != record.to_dict()
        self.state = record
        if changed:
            self._notify(record)

    # =========================================================================
    # Actions
    # =========================================================================

    async def move(self, x: int, y: int) -> ActionOutcome:
        return await self._act(ActionType.MOVE, self.engine.move, x, y)

    async def explore(self, x: int, y: int) -> ActionOutcome:
        return await self._act(ActionType.EXPLORE, self.engine.explore, x, y)

    async def dig(self, x: int, y: int) -> ActionOutcome:
        return await self._act(ActionType.DIG, self.engine.dig, x, y)

    async def bury(self, x: int, y: int, amount: int) -> ActionOutcome:
        return await self._act(ActionType.BURY, self.engine.bury, x, y, amount)

    async def _act(self, action_type: ActionType, call, *args) -> ActionOutcome:
        if self._in_flight:
            outcome = ActionOutcome.from_error(
                action_type, ActionStatus.REJECTED,
                BusyError("Another action is already in progress"),
            )
            self.last_error = outcome.message
            return outcome

        self._in_flight = True
        try:
            outcome = await call(self.identity, *args)
        finally:
            self._in_flight = False

        if outcome.success:
            self.last_error = None
            self.log(outcome.message)
        else:
            self.last_error = outcome.message
            self.log(f"{action_type.name.capitalize()} failed: {outcome.message}")

        if self.identity in self.engine.store:
            self.refresh()
        return outcome

    async def watch(self, interval: float = DEFAULT_POLL_INTERVAL) -> AsyncIterator[PlayerRecord]:
        """
        Poll the engine and yield the state each time it changes.
        The first state is yielded immediately.
        """
        last = None
        while True:
            record = self.refresh()
            snapshot = record.to_dict()
            if snapshot != last:
                last = snapshot
                yield record
            await asyncio.sleep(interval)


# =============================================================================
# HTTP client
# =============================================================================

class HttpGameClient(_ActivityMixin):
    """
    Same calls over the HTTP API.

    Results are the JSON bodies returned by the server. Error responses
    are raised as GameError with the server's ErrorKind.

    Example usage:
        async with HttpGameClient(wallet, base_url="http://localhost:8000") as client:
            await client.connect()
            result = await client.move(1, 1)
    """

    def __init__(self, identity: str, base_url: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 35.0, log_size: int = DEFAULT_LOG_SIZE):
        if client is None and base_url is None:
            raise ValueError("Either base_url or client is required")
        self.identity = identity
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.state: Optional[Dict[str, Any]] = None
        self.tx: Optional[str] = None
        self._init_activity(log_size)

    async def __aenter__(self) -> "HttpGameClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self._owns_client:
            await self.http.aclose()

    # =========================================================================
    # Transport
    # =========================================================================

    @staticmethod
    def _raise_for_error(response: httpx.Response) -> Dict[str, Any]:
        if response.is_success:
            return response.json()
        try:
            data = response.json()
        except ValueError:
            # Not one of ours, e.g. a proxy error page
            data = None
        if not isinstance(data, dict):
            raise GameError(f"HTTP {response.status_code}", ErrorKind.INTERNAL)
        try:
            kind = ErrorKind[data.get("kind", "INTERNAL")]
        except KeyError:
            kind = ErrorKind.INTERNAL
        raise GameError(data.get("error", f"HTTP {response.status_code}"), kind)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http.post(path, json=payload)
        return self._raise_for_error(response)

    def _set_state(self, state: Dict[str, Any]):
        changed = state != self.state
        self.state = state
        if changed:
            self._notify(state)

    # =========================================================================
    # Calls
    # =========================================================================

    async def connect(self) -> Dict[str, Any]:
        data = await self._post("/api/game/register", {"wallet": self.identity})
        self.tx = data.get("tx")
        self.log("Connected")
        self._set_state(data["state"])
        return data["state"]

    async def refresh(self) -> Dict[str, Any]:
        response = await self.http.get("/api/game/state", params={"wallet": self.identity})
        data = self._raise_for_error(response)
        self._set_state(data["state"])
        return data["state"]

    async def move(self, x: int, y: int) -> Dict[str, Any]:
        return await self._act("move", {"targetX": x, "targetY": y})

    async def explore(self, x: int, y: int) -> Dict[str, Any]:
        return await self._act("explore", {"targetX": x, "targetY": y})

    async def dig(self, x: int, y: int) -> Dict[str, Any]:
        return await self._act("dig", {"targetX": x, "targetY": y})

    async def bury(self, x: int, y: int, amount: int) -> Dict[str, Any]:
        return await self._act("bury", {"targetX": x, "targetY": y, "amount": amount})

    async def _act(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._in_flight:
            self.last_error = "Another action is already in progress"
            raise BusyError(self.last_error)

        self._in_flight = True
        try:
            data = await self._post(f"/api/game/{action}", dict(payload, wallet=self.identity))
        except GameError as e:
            self.last_error = e.reason
            self.log(f"{action.capitalize()} failed: {e.reason}")
            raise
        finally:
            self._in_flight = False

        self.last_error = None
        self.log(data.get("message", action))
        if "state" in data:
            self._set_state(data["state"])
        return data

    async def watch(self, interval: float = DEFAULT_POLL_INTERVAL) -> AsyncIterator[Dict[str, Any]]:
        """Poll the server and yield the state each time it changes"""
        last = None
        while True:
            state = await self.refresh()
            if state != last:
                last = state
                yield state
            await asyncio.sleep(interval)
