from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from lifewall.api.models import (
    ControlResponse,
    EventRequest,
    GameEndRequest,
    GridPushRequest,
    HealthResponse,
    ScheduleResponse,
    ScheduleToggleRequest,
    ScoresPayload,
    ScoresResponse,
    TransitionRequest,
)
from lifewall.common.config import settings
from lifewall.common.types import LifewallError
from lifewall.engine.catalog import Catalog
from lifewall.engine.engine import GameEngine
from lifewall.persist.jsonfile import JsonFilePersistence

logger = logging.getLogger(__name__)

persistence: JsonFilePersistence | None = None
engine: GameEngine | None = None
engine_lock = asyncio.Lock()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global persistence, engine
    persistence = JsonFilePersistence(
        settings.state_path,
        settings.stats_path,
        debounce_seconds=settings.save_debounce_seconds,
        max_delay_seconds=settings.save_max_delay_seconds,
        max_age_seconds=settings.max_state_age_seconds,
    )
    catalog = Catalog.load(settings.palettes_path, settings.teams_path)
    engine = GameEngine.from_settings(settings, persistence, catalog)
    engine.start(persistence.load_session())
    task: asyncio.Task | None = None
    if settings.enable_tick_loop:
        task = asyncio.create_task(tick_loop())
    else:
        logger.warning("Tick loop disabled via LIFEWALL_ENABLE_TICK_LOOP")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        persistence.close()


app = FastAPI(title="Lifewall", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_engine() -> GameEngine:
    assert engine is not None
    return engine


def _get_persistence() -> JsonFilePersistence:
    assert persistence is not None
    return persistence


def _check_api_key(provided: str | None) -> None:
    if settings.api_key and provided != settings.api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def _bad_request(exc: LifewallError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _control_response(game_engine: GameEngine, changed: bool) -> ControlResponse:
    session = game_engine.session
    return ControlResponse(
        changed=changed,
        state_version=game_engine.state_version,
        lifecycle_state=session.lifecycle_state.value,
        pregame_phase=session.pregame_phase.value,
    )


async def tick_loop() -> None:
    game_engine = _get_engine()
    while True:
        async with engine_lock:
            try:
                game_engine.tick_once()
            except Exception:
                logger.exception("Tick %s failed", game_engine.tick)
        await asyncio.sleep(settings.tick_seconds)


@app.get("/api/game")
async def game_state(include_grid: bool = False) -> Dict[str, Any]:
    game_engine = _get_engine()
    async with engine_lock:
        return game_engine.render_state(include_grid=include_grid)


@app.post("/api/game/grid")
async def push_grid(
    req: GridPushRequest, x_api_key: str | None = Header(default=None)
) -> Dict[str, Any]:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        try:
            game_engine.apply_grid_push(req.model_dump(exclude_unset=True))
        except LifewallError as exc:
            raise _bad_request(exc) from exc
        return {"status": "ok", "team_counts": list(game_engine.simulation.team_counts)}


@app.post("/api/control/transition", response_model=ControlResponse)
async def control_transition(
    req: TransitionRequest, x_api_key: str | None = Header(default=None)
) -> ControlResponse:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        try:
            changed = game_engine.transition(req.state, req.phase)
        except LifewallError as exc:
            raise _bad_request(exc) from exc
        return _control_response(game_engine, changed)


@app.post("/api/control/advance", response_model=ControlResponse)
async def control_advance(x_api_key: str | None = Header(default=None)) -> ControlResponse:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        try:
            changed = game_engine.advance_phase()
        except LifewallError as exc:
            raise _bad_request(exc) from exc
        return _control_response(game_engine, changed)


@app.post("/api/control/event", response_model=ControlResponse)
async def control_event(
    req: EventRequest, x_api_key: str | None = Header(default=None)
) -> ControlResponse:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        try:
            changed = game_engine.set_event(req.event)
        except LifewallError as exc:
            raise _bad_request(exc) from exc
        return _control_response(game_engine, changed)


@app.post("/api/control/spawn-chance/reset")
async def control_reset_spawn_chance(
    x_api_key: str | None = Header(default=None),
) -> Dict[str, Any]:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        game_engine.reset_spawn_chance()
        return {"status": "ok", "spawn_chance": game_engine.simulation.spawn_chance}


@app.post("/api/control/reset", response_model=ControlResponse)
async def control_hard_reset(x_api_key: str | None = Header(default=None)) -> ControlResponse:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        game_engine.hard_reset()
        return _control_response(game_engine, True)


@app.get("/api/schedule", response_model=ScheduleResponse)
async def schedule_status() -> ScheduleResponse:
    game_engine = _get_engine()
    async with engine_lock:
        data = game_engine.schedule.to_dict(game_engine.wall_clock())
    return ScheduleResponse(**data)


@app.post("/api/schedule/toggle", response_model=ScheduleResponse)
async def schedule_toggle(
    req: ScheduleToggleRequest, x_api_key: str | None = Header(default=None)
) -> ScheduleResponse:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        game_engine.toggle_schedule(req.enabled)
        data = game_engine.schedule.to_dict(game_engine.wall_clock())
    return ScheduleResponse(**data)


@app.get("/api/scores", response_model=ScoresResponse)
async def scores() -> ScoresResponse:
    game_engine = _get_engine()
    async with engine_lock:
        data = game_engine.scoreboard.snapshot()
    return ScoresResponse(**data)


@app.post("/api/scores", response_model=ScoresResponse)
async def update_scores(
    req: ScoresPayload, x_api_key: str | None = Header(default=None)
) -> ScoresResponse:
    _check_api_key(x_api_key)
    game_engine = _get_engine()
    async with engine_lock:
        game_engine.scoreboard.update(req.model_dump())
        data = game_engine.scoreboard.snapshot()
    return ScoresResponse(**data)


@app.get("/api/stats")
async def stats() -> Dict[str, Any]:
    return _get_persistence().load_stats()


@app.post("/api/game-end")
async def game_end(
    req: GameEndRequest, x_api_key: str | None = Header(default=None)
) -> Dict[str, Any]:
    _check_api_key(x_api_key)
    store = _get_persistence()
    winner = req.winner.model_dump() if req.winner and req.winner.name else None
    return store.record_game_end(winner, req.palette, req.category)


@app.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    game_engine = _get_engine()
    async with engine_lock:
        return HealthResponse(
            status="ok",
            state_version=game_engine.state_version,
            lifecycle_state=game_engine.session.lifecycle_state.value,
            tick=game_engine.tick,
        )


def main() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
