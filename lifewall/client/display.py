from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Callable
from typing import Any, Dict, List

import numpy as np
import requests

from lifewall.common.config import settings
from lifewall.common.constants import DEFAULT_TEAM_COLORS, NUM_TEAMS
from lifewall.common.types import (
    SIMULATING_STATES,
    GameEvent,
    LifecycleState,
    PregamePhase,
    SnapshotError,
)
from lifewall.engine.engine import event_label
from lifewall.engine.render import TrailRenderer, fade_amount_for
from lifewall.engine.rules import RandomSource
from lifewall.engine.scoreboard import Scoreboard
from lifewall.engine.simulation import SimulationEngine, grid_dimensions
from lifewall.engine.state import parse_event

logger = logging.getLogger(__name__)


class DisplayClient:
    """Kiosk display: runs its own board and follows the server's lifecycle.

    The server owns state and phase; the display owns its pixels. It polls
    the server, mirrors transitions locally, and pushes its board and scores
    back on their own timers. Network failures are logged and retried on the
    next interval.
    """

    def __init__(
        self,
        base_url: str,
        rows: int,
        cols: int,
        seed: int | None = None,
        spawn_chance: float = 0.00005,
        drought_decrement: float = 0.0001,
        comet_min_radius: int = 3,
        comet_max_radius: int = 12,
        comet_interval_frames: int = 7,
        trail_fade: float = 0.005,
        initial_density: float = 0.5,
        frame_seconds: float = 0.1,
        poll_interval: float = 10.0,
        grid_push_interval: float = 60.0,
        scoreboard_interval_frames: int = 5,
        scoreboard_min_interval: float = 120.0,
        api_key: str | None = None,
        timeout: float = 5.0,
        http: requests.Session | None = None,
        clock: Callable[[], float] = time.monotonic,
        random_source: RandomSource | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.rows = rows
        self.cols = cols
        self.comet_interval_frames = comet_interval_frames
        self.frame_seconds = frame_seconds
        self.poll_interval = poll_interval
        self.grid_push_interval = grid_push_interval
        self.scoreboard_interval_frames = scoreboard_interval_frames
        self.api_key = api_key
        self.timeout = timeout
        self.http = http or requests.Session()
        self.clock = clock
        self.simulation = SimulationEngine(
            rows,
            cols,
            random_source or RandomSource(seed),
            spawn_chance=spawn_chance,
            drought_decrement=drought_decrement,
            comet_min_radius=comet_min_radius,
            comet_max_radius=comet_max_radius,
            initial_density=initial_density,
        )
        self.renderer = TrailRenderer(DEFAULT_TEAM_COLORS, fade_amount_for(trail_fade))
        self.scoreboard = Scoreboard(scoreboard_min_interval)
        self.framebuffer = np.zeros(rows * cols, dtype=np.uint32)
        self.lifecycle_state: LifecycleState | None = None
        self.pregame_phase: PregamePhase | None = None
        self.resume_state: LifecycleState | None = None
        self.active_event: GameEvent | None = None
        self.team_names: List[str] = [f"Team {i}" for i in range(1, NUM_TEAMS + 1)]
        self.stats: Dict[str, Any] = {}
        self.last_version: int | None = None
        self.pregame_start_time: float | None = None
        self.loaded = False
        self.frames = 0
        self._last_frame: float | None = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key} if self.api_key else {}

    # Server -> display

    def poll(self, include_grid: bool = False) -> bool:
        try:
            resp = self.http.get(
                self._url("/api/game"),
                params={"include_grid": "true" if include_grid else "false"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            state = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Failed to poll server: %s", exc)
            return False
        try:
            self.apply_server_state(state)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable server state: %s", exc)
            return False
        return True

    def apply_server_state(self, state: Dict[str, Any]) -> None:
        new_state = LifecycleState(state["lifecycle_state"])
        new_phase = PregamePhase(state.get("pregame_phase") or PregamePhase.PALETTE)
        event = parse_event(state.get("active_event"))

        version = state.get("state_version")
        pregame_start = state.get("pregame_start_time")
        restarted = False
        if version != self.last_version:
            logger.info("State update (v%s -> v%s)", self.last_version, version)
            self.last_version = version
            # every pregame entry on the server stamps a new start time
            restarted = (
                new_state is LifecycleState.PRE_RUN
                and pregame_start != self.pregame_start_time
            )
        self.pregame_start_time = pregame_start

        colors = state.get("team_colors")
        if colors and list(colors) != self.renderer.team_colors:
            self.renderer.set_colors(colors)
        if state.get("team_names"):
            self.team_names = [
                name or f"Team {i + 1}" for i, name in enumerate(state["team_names"])
            ]
        if state.get("spawn_chance") is not None:
            self.simulation.spawn_chance = float(state["spawn_chance"])
        self.active_event = event

        first_load = not self.loaded
        prior = self.lifecycle_state
        changed = new_state is not prior or new_phase is not self.pregame_phase
        self.lifecycle_state = new_state
        self.pregame_phase = new_phase
        if first_load:
            if self._adopt_grid(state):
                logger.info("Grid restored from server")
            else:
                self.simulation.reset()
            self.loaded = True
            if new_state is LifecycleState.PRE_RUN:
                self.fetch_stats()
        elif restarted:
            logger.info("Server started a new pregame")
            self.resume_state = None
            self._handle_state_change(new_state, None)
        elif changed:
            self._handle_state_change(new_state, prior)

    def _adopt_grid(self, state: Dict[str, Any]) -> bool:
        dims = state.get("grid_dimensions")
        if not isinstance(dims, dict):
            return False
        if state.get("grid") is None or dims.get("rows") != self.rows or dims.get("cols") != self.cols:
            return False
        try:
            self.simulation.load_snapshot(
                state["grid"],
                state.get("trail_color"),
                state.get("trail_brightness"),
                trail=state.get("trail"),
            )
        except SnapshotError as exc:
            logger.warning("Server grid rejected: %s", exc)
            return False
        return True

    def _handle_state_change(self, new_state: LifecycleState, prior: LifecycleState | None) -> None:
        if new_state is LifecycleState.PAUSED:
            if prior is not LifecycleState.PAUSED:
                self.resume_state = prior
            return
        if prior is LifecycleState.PAUSED:
            resumed = self.resume_state
            self.resume_state = None
            if new_state is resumed:
                return
            prior = resumed

        if new_state is LifecycleState.PRE_RUN:
            if prior is not LifecycleState.PRE_RUN:
                self.simulation.reset()
            self.fetch_stats()
        elif new_state is LifecycleState.RUNNING:
            if prior is LifecycleState.PRE_RUN:
                self.simulation.reset()
        elif new_state is LifecycleState.GAME_OVER:
            self.simulation.count_teams()
            self.push_scores(self.clock(), force=True)

    def fetch_stats(self) -> Dict[str, Any]:
        try:
            resp = self.http.get(self._url("/api/stats"), timeout=self.timeout)
            resp.raise_for_status()
            self.stats = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Failed to fetch stats: %s", exc)
        return self.stats

    # Display -> server

    def push_grid(self) -> bool:
        payload = self.simulation.export_snapshot()
        payload.update(
            {
                "team_counts": self.simulation.count_teams(),
                "active_event": self.active_event.value if self.active_event else None,
                "spawn_chance": self.simulation.spawn_chance,
            }
        )
        try:
            resp = self.http.post(
                self._url("/api/game/grid"),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to send grid to server: %s", exc)
            return False
        return True

    def scores_payload(self) -> Dict[str, Any]:
        counts = self.simulation.team_counts
        colors = self.renderer.team_colors
        return {
            "teams": [
                {"name": self.team_names[i - 1], "color": colors[i], "count": counts[i]}
                for i in range(1, NUM_TEAMS + 1)
            ],
            "event": event_label(self.active_event),
        }

    def push_scores(self, now: float, force: bool = False) -> bool:
        """Publish standings, at most once per scoreboard interval unless forced."""
        payload = self.scores_payload()
        if not self.scoreboard.offer(payload, now, force=force):
            return False
        try:
            resp = self.http.post(
                self._url("/api/scores"),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Failed to send scores: %s", exc)
            return False
        return True

    # Frames

    def step(self, now: float) -> np.ndarray | None:
        """Advance and draw one frame; None when throttled."""
        if self._last_frame is not None and now - self._last_frame < self.frame_seconds:
            return None
        self._last_frame = now
        state = self.lifecycle_state
        if state is None or state is LifecycleState.PAUSED:
            return self.framebuffer
        self.frames += 1

        sim = self.simulation
        if self.active_event is GameEvent.DROUGHT:
            sim.lower_spawn_chance()
        if (
            self.active_event is GameEvent.COMETS
            and self.comet_interval_frames > 0
            and self.frames % self.comet_interval_frames == 0
        ):
            sim.spawn_comet()
        if state in SIMULATING_STATES:
            sim.next_generation()
        self.renderer.update_and_draw(
            sim.grid, sim.trail_color, sim.trail_brightness, out=self.framebuffer
        )
        sim.count_teams()
        if (
            state is LifecycleState.RUNNING
            and self.scoreboard_interval_frames > 0
            and self.frames % self.scoreboard_interval_frames == 0
        ):
            self.push_scores(now)
        return self.framebuffer

    def initialize(self) -> bool:
        ok = self.poll(include_grid=True)
        if not self.loaded:
            self.simulation.reset()
        logger.info("Display initialized (%sx%s), polling %s", self.rows, self.cols, self.base_url)
        return ok

    def run_forever(
        self,
        max_frames: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.initialize()
        last_poll = last_push = self.clock()
        rendered = 0
        while max_frames is None or rendered < max_frames:
            now = self.clock()
            if now - last_poll >= self.poll_interval:
                last_poll = now
                self.poll(include_grid=not self.loaded)
            if now - last_push >= self.grid_push_interval:
                last_push = now
                self.push_grid()
            if self.step(now) is not None:
                rendered += 1
            sleep(self.frame_seconds)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run a Lifewall display client")
    parser.add_argument("--server", default=f"http://127.0.0.1:{settings.port}")
    parser.add_argument("--width", type=int, default=settings.display_width)
    parser.add_argument("--height", type=int, default=settings.display_height)
    parser.add_argument("--seed", type=int, default=settings.random_seed)
    parser.add_argument("--frames", type=int, default=None, help="stop after N frames")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    rows, cols, cell_size = grid_dimensions(args.width, args.height, settings.base_cell_size)
    logger.info("Grid %sx%s at %spx cells", rows, cols, cell_size)
    client = DisplayClient(
        args.server,
        rows,
        cols,
        seed=args.seed,
        spawn_chance=settings.initial_spawn_chance,
        drought_decrement=settings.drought_decrement,
        comet_min_radius=settings.comet_min_radius,
        comet_max_radius=settings.comet_max_radius,
        comet_interval_frames=settings.comet_interval_ticks,
        trail_fade=settings.trail_fade,
        initial_density=settings.initial_density,
        frame_seconds=settings.tick_seconds,
        poll_interval=settings.poll_interval_seconds,
        grid_push_interval=settings.grid_push_interval_seconds,
        scoreboard_interval_frames=settings.scoreboard_interval_ticks,
        scoreboard_min_interval=settings.scoreboard_min_interval_seconds,
        api_key=settings.api_key,
    )
    try:
        client.run_forever(max_frames=args.frames)
    except KeyboardInterrupt:
        logger.info("Display stopped")


if __name__ == "__main__":
    main()
