# =============================================================================
# Buried Treasure - Secure Computation Gateway
# =============================================================================
"""
Boundary to the external secure computation cluster.

The engine only relies on the contract:

    handle = gateway.submit(job)                 # returns immediately
    sealed = await gateway.await_result(handle, timeout)
    payload = sealed.open(requester)

submit() may raise RateLimitedError or ComputeUnavailableError.
await_result() raises TimedOutError when no result arrives in time.

A job runs at most once. Its result can be fetched again until the
handle is released. After discard() a late result is dropped.

Sealing here is an envelope bound to a recipient, not encryption. The
real cluster decides how inputs and results are protected.
"""

import asyncio
import base64
import json
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .enums import ActionType
from .data_structures import (
    ComputationJob, ComputeUnavailableError, Coordinate, GameConfig, GameError,
    InvalidInputError, RateLimitedError, TimedOutError,
)
from .treasure_map import TreasureMap

logger = logging.getLogger(__name__)


CLUSTER_RECIPIENT = "__cluster__"


# =============================================================================
# Sealed payloads
# =============================================================================

@dataclass(frozen=True)
class SealedPayload:
    """An opaque blob that only its recipient may open"""
    recipient: str = field(repr=False)
    ciphertext: str

    def open(self, recipient: str) -> Dict[str, Any]:
        if recipient != self.recipient:
            raise GameError("Result is sealed to a different recipient")
        return json.loads(base64.b64decode(self.ciphertext).decode("utf-8"))


def seal(payload: Dict[str, Any], recipient: str) -> SealedPayload:
    data = json.dumps(payload, sort_keys=True).encode("utf-8")
    return SealedPayload(recipient=recipient, ciphertext=base64.b64encode(data).decode("utf-8"))


@dataclass(frozen=True)
class ComputationHandle:
    """Returned by submit(); the only way to fetch a result"""
    job_id: str
    kind: ActionType
    submitted_at: float


# =============================================================================
# Gateway contract
# =============================================================================

class SecureComputationGateway(ABC):
    """
    Abstract gateway. Implementations may call a remote cluster or
    simulate one in-process.
    """

    @abstractmethod
    def submit(self, job: ComputationJob) -> ComputationHandle:
        """Hand a job to the cluster without waiting for it"""

    @abstractmethod
    async def await_result(self, handle: ComputationHandle, timeout: float) -> SealedPayload:
        """Wait for the sealed result of a submitted job"""

    @abstractmethod
    def discard(self, handle: ComputationHandle):
        """Give up on a job; any result arriving later is dropped"""

    @abstractmethod
    def release(self, handle: ComputationHandle):
        """Forget a job whose result has been applied"""


# =============================================================================
# In-process cluster
# =============================================================================

Circuit = Callable[[TreasureMap, Dict[str, Any]], Dict[str, Any]]


def _target(payload: Dict[str, Any], size: int) -> Coordinate:
    coord = Coordinate(int(payload["x"]), int(payload["y"]))
    if not (0 <= coord.x < size and 0 <= coord.y < size):
        raise InvalidInputError("Out of bounds")
    return coord


def _move_circuit(tile_map: TreasureMap, payload: Dict[str, Any]) -> Dict[str, Any]:
    coord = _target(payload, tile_map.size)
    return {"x": coord.x, "y": coord.y}


def _reveal_circuit(tile_map: TreasureMap, payload: Dict[str, Any]) -> Dict[str, Any]:
    kind, value = tile_map.tile_at(_target(payload, tile_map.size))
    return {"tile_kind": int(kind), "value": value}


def _bury_circuit(tile_map: TreasureMap, payload: Dict[str, Any]) -> Dict[str, Any]:
    _target(payload, tile_map.size)
    amount = int(payload["amount"])
    return {"accepted": amount > 0}


DEFAULT_CIRCUITS: Dict[ActionType, Circuit] = {
    ActionType.MOVE: _move_circuit,
    ActionType.EXPLORE: _reveal_circuit,
    ActionType.DIG: _reveal_circuit,
    ActionType.BURY: _bury_circuit,
}


class LocalComputeCluster(SecureComputationGateway):
    """
    Deterministic stand-in for the real cluster.

    Holds the hidden map, answers each job after a fixed latency and
    seals the answer to the requester. Useful for tests and local play.

    Example usage:
        cluster = LocalComputeCluster(TreasureMap.generate(seed=7), latency=0.01)
        handle = cluster.submit(job)
        sealed = await cluster.await_result(handle, timeout=1.0)
    """

    def __init__(self, tile_map: TreasureMap, latency: float = 1.2,
                 max_pending: int = 256,
                 history_size: int = 1024,
                 circuits: Optional[Dict[ActionType, Circuit]] = None):
        self.tile_map = tile_map
        self.latency = latency
        self.max_pending = max_pending
        self.history_size = history_size
        self.circuits = dict(circuits or DEFAULT_CIRCUITS)
        self.available = True

        self._tasks: Dict[str, asyncio.Task] = {}
        self._results: Dict[str, SealedPayload] = {}
        self._discarded: set = set()
        # Execution counts of the most recent jobs only
        self.executions: "OrderedDict[str, int]" = OrderedDict()

    @classmethod
    def from_config(cls, config: GameConfig, tile_map: Optional[TreasureMap] = None) -> "LocalComputeCluster":
        return cls(
            tile_map=tile_map or TreasureMap.generate(config),
            latency=config.compute_latency,
            max_pending=config.max_pending_jobs,
        )

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks.values() if not t.done())

    # =========================================================================
    # Contract
    # =========================================================================

    def submit(self, job: ComputationJob) -> ComputationHandle:
        if not self.available:
            raise ComputeUnavailableError("Computation cluster unavailable")
        if job.kind not in self.circuits:
            raise ComputeUnavailableError(f"No computation registered for {job.kind.name}")

        handle = ComputationHandle(job_id=job.job_id, kind=job.kind, submitted_at=job.submitted_at)
        if job.job_id in self._tasks or job.job_id in self._results:
            # Same job submitted twice: never run it again
            return handle
        if self.pending >= self.max_pending:
            raise RateLimitedError("Computation cluster is busy, try again shortly")

        self._tasks[job.job_id] = asyncio.get_running_loop().create_task(self._run(job))
        return handle

    async def await_result(self, handle: ComputationHandle, timeout: float) -> SealedPayload:
        if handle.job_id in self._results:
            return self._results[handle.job_id]
        task = self._tasks.get(handle.job_id)
        if task is None:
            raise GameError("Unknown or released computation handle")
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            raise TimedOutError("Timed out waiting for the computation cluster")

    def discard(self, handle: ComputationHandle):
        self._results.pop(handle.job_id, None)
        task = self._tasks.pop(handle.job_id, None)
        if task is not None and not task.done():
            job_id = handle.job_id
            self._discarded.add(job_id)
            task.add_done_callback(lambda _: self._discarded.discard(job_id))
            task.cancel()

    def release(self, handle: ComputationHandle):
        self._results.pop(handle.job_id, None)
        self._tasks.pop(handle.job_id, None)

    # =========================================================================
    # Execution
    # =========================================================================

    async def _run(self, job: ComputationJob) -> SealedPayload:
        started = time.monotonic()
        await asyncio.sleep(self.latency)

        self.executions[job.job_id] = self.executions.get(job.job_id, 0) + 1
        self.executions.move_to_end(job.job_id)
        while len(self.executions) > self.history_size:
            self.executions.popitem(last=False)
        payload = job.encrypted_input.open(CLUSTER_RECIPIENT)
        try:
            answer = self.circuits[job.kind](self.tile_map, payload)
        except GameError:
            raise
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidInputError(f"Malformed computation input: {e}")

        sealed = seal(answer, job.requester)
        if job.job_id in self._discarded:
            logger.info("Dropping late %s result", job.kind.name)
            self._discarded.discard(job.job_id)
        else:
            self._results[job.job_id] = sealed
        logger.debug("%s computation finished in %.3fs", job.kind.name, time.monotonic() - started)
        return sealed
