"""
Game Routes

REST API endpoints for one game:
- Register a wallet
- Query the caller's own state
- Move, explore, dig and bury

Handlers only parse the request and forward it to the engine.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.app.core import GameConfig, GameEngine, GameError, ActionOutcome, create_game

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Pydantic Models for Request/Response
# =============================================================================

class RegisterRequest(BaseModel):
    """Request model for registering a wallet"""
    wallet: str = Field(..., min_length=1, description="Player wallet address")

    model_config = {
        "json_schema_extra": {
            "example": {"wallet": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"}
        }
    }


class TargetRequest(RegisterRequest):
    """Request model for move, explore and dig"""
    targetX: int = Field(..., description="Target column")
    targetY: int = Field(..., description="Target row")

    model_config = {
        "json_schema_extra": {
            "example": {"wallet": "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU", "targetX": 1, "targetY": 0}
        }
    }


class BuryRequest(TargetRequest):
    """Request model for bury"""
    amount: int = Field(..., description="Gold to bury")


class PlayerStateResponse(BaseModel):
    """Response model for the caller's own state"""
    x: int
    y: int
    gold: int
    health: int
    maxHealth: int
    explored: List[str]
    buried: List[str]
    stats: Dict[str, int]


class RegisterResponse(BaseModel):
    tx: str
    state: PlayerStateResponse


class StateResponse(BaseModel):
    state: PlayerStateResponse


# =============================================================================
# Engine (one game per process)
# =============================================================================

_engine: Optional[GameEngine] = None


def get_engine() -> GameEngine:
    """The process-wide game, created on first use from the environment"""
    global _engine
    if _engine is None:
        config = GameConfig.from_env()
        _engine = create_game(config)
        logger.info("Game %s ready", _engine.game_id)
    return _engine


def reset_engine(engine: Optional[GameEngine] = None):
    """Replace the process-wide game (or drop it so the next call recreates it)"""
    global _engine
    if _engine is not None and _engine is not engine:
        _engine.close()
    _engine = engine


def _action_response(engine: GameEngine, wallet: str, outcome: ActionOutcome) -> Dict[str, Any]:
    if not outcome.success:
        raise GameError(outcome.message, outcome.error_kind)
    result = outcome.to_dict()
    result["state"] = engine.get_state(wallet).to_dict()
    return result


# =============================================================================
# API Endpoints
# =============================================================================

@router.get("/info")
async def game_info(engine: GameEngine = Depends(get_engine)):
    """Public game metadata"""
    return engine.to_dict()


@router.post("/register", response_model=RegisterResponse)
async def register(request: RegisterRequest, engine: GameEngine = Depends(get_engine)):
    """
    Register a wallet. Registering twice returns the existing state.
    """
    record, tx = engine.register(request.wallet)
    return {"tx": tx, "state": record.to_dict()}


@router.get("/state", response_model=StateResponse)
async def get_state(
    wallet: str = Query(..., min_length=1, description="Player wallet address"),
    engine: GameEngine = Depends(get_engine),
):
    """
    Full state of the caller. Unknown wallets are registered on the fly.
    """
    return {"state": engine.get_state(wallet).to_dict()}


@router.post("/move")
async def move(request: TargetRequest, engine: GameEngine = Depends(get_engine)):
    """Step onto one of the 8 neighbouring tiles"""
    outcome = await engine.move(request.wallet, request.targetX, request.targetY)
    return _action_response(engine, request.wallet, outcome)


@router.post("/explore")
async def explore(request: TargetRequest, engine: GameEngine = Depends(get_engine)):
    """Reveal a tile to the caller only"""
    outcome = await engine.explore(request.wallet, request.targetX, request.targetY)
    return _action_response(engine, request.wallet, outcome)


@router.post("/dig")
async def dig(request: TargetRequest, engine: GameEngine = Depends(get_engine)):
    """Dig up a tile; the answer merges the map and buried loot"""
    outcome = await engine.dig(request.wallet, request.targetX, request.targetY)
    return _action_response(engine, request.wallet, outcome)


@router.post("/bury")
async def bury(request: BuryRequest, engine: GameEngine = Depends(get_engine)):
    """Bury gold on a tile. The response never names the depositor."""
    outcome = await engine.bury(request.wallet, request.targetX, request.targetY, request.amount)
    if not outcome.success:
        raise GameError(outcome.message, outcome.error_kind)
    return outcome.to_dict()
