from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from lifewall.common.constants import (
    DEAD_COLOR,
    EVENT_LABELS,
    NO_EVENT_LABEL,
    NUM_TEAMS,
)
from lifewall.common.types import (
    PHASE_ORDER,
    SIMULATING_STATES,
    GameEvent,
    LifecycleState,
    PregamePhase,
    SnapshotError,
    TransitionError,
)
from lifewall.engine.catalog import Catalog, Palette
from lifewall.engine.render import TrailRenderer, fade_amount_for
from lifewall.engine.rules import RandomSource
from lifewall.engine.schedule import Schedule
from lifewall.engine.scoreboard import Scoreboard
from lifewall.engine.simulation import SimulationEngine, grid_dimensions
from lifewall.engine.state import SessionState, parse_event
from lifewall.persist.base import Persistence

logger = logging.getLogger(__name__)


def compute_winner(
    team_counts: List[int],
    team_names: Optional[List[str]] = None,
    team_colors: Optional[List[str]] = None,
) -> Optional[Dict[str, Any]]:
    """Team with the strictly highest count, or None on a tie at the top or an empty board.

    ``team_counts`` is indexed by team (index 0 unused).
    """
    counts = [int(n) for n in team_counts[1 : NUM_TEAMS + 1]]
    best = max(counts)
    if best <= 0 or counts.count(best) > 1:
        return None
    team = counts.index(best) + 1
    name = team_names[team - 1] if team_names and team_names[team - 1] else f"Team {team}"
    color = team_colors[team] if team_colors else None
    return {"team": team, "name": name, "color": color, "count": best}


def event_label(event: Optional[GameEvent]) -> str:
    return EVENT_LABELS.get(event.value, NO_EVENT_LABEL) if event else NO_EVENT_LABEL


class GameEngine:
    """Authoritative game: lifecycle state machine driving the simulation."""

    def __init__(
        self,
        persistence: Persistence,
        catalog: Catalog,
        rows: int,
        cols: int,
        seed: int | None = None,
        spawn_chance: float = 0.00005,
        drought_decrement: float = 0.0001,
        comet_min_radius: int = 3,
        comet_max_radius: int = 12,
        comet_interval_ticks: int = 7,
        trail_fade: float = 0.005,
        initial_density: float = 0.5,
        night_mode_delay: float = 600.0,
        teams_reveal_seconds: float = 300.0,
        stats_reveal_seconds: float = 900.0,
        scoreboard_interval_ticks: int = 5,
        scoreboard_min_interval: float = 120.0,
        grid_backup_seconds: float = 60.0,
        schedule: Schedule | None = None,
        simulate: bool = True,
        clock: Callable[[], float] = time.time,
        wall_clock: Callable[[], datetime] = datetime.now,
        random_source: RandomSource | None = None,
    ) -> None:
        self.persistence = persistence
        self.catalog = catalog
        self.rows = rows
        self.cols = cols
        self.rng = random.Random(seed)
        self.comet_interval_ticks = comet_interval_ticks
        self.night_mode_delay = night_mode_delay
        self.teams_reveal_seconds = teams_reveal_seconds
        self.stats_reveal_seconds = stats_reveal_seconds
        self.scoreboard_interval_ticks = scoreboard_interval_ticks
        self.grid_backup_seconds = grid_backup_seconds
        self.simulate = simulate
        self.clock = clock
        self.wall_clock = wall_clock
        self.schedule = schedule or Schedule()
        self.scoreboard = Scoreboard(scoreboard_min_interval)
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
        self.session = SessionState(spawn_chance=spawn_chance)
        self.renderer = TrailRenderer(self.session.team_colors, fade_amount_for(trail_fade))
        self.state_version = 0
        self.tick = 0
        self._comet_ticks = 0
        self._last_expected: tuple | None = None
        self._last_backup = clock()
        self._framebuffer = np.zeros(rows * cols, dtype=np.uint32)

    @classmethod
    def from_settings(cls, settings, persistence: Persistence, catalog: Catalog) -> "GameEngine":
        rows, cols, _cell_size = grid_dimensions(
            settings.display_width, settings.display_height, settings.base_cell_size
        )
        return cls(
            persistence,
            catalog,
            rows,
            cols,
            seed=settings.random_seed,
            spawn_chance=settings.initial_spawn_chance,
            drought_decrement=settings.drought_decrement,
            comet_min_radius=settings.comet_min_radius,
            comet_max_radius=settings.comet_max_radius,
            comet_interval_ticks=settings.comet_interval_ticks,
            trail_fade=settings.trail_fade,
            initial_density=settings.initial_density,
            night_mode_delay=settings.night_mode_delay_seconds,
            teams_reveal_seconds=settings.teams_reveal_seconds,
            stats_reveal_seconds=settings.stats_reveal_seconds,
            scoreboard_interval_ticks=settings.scoreboard_interval_ticks,
            scoreboard_min_interval=settings.scoreboard_min_interval_seconds,
            grid_backup_seconds=settings.grid_backup_seconds,
            schedule=Schedule(settings.schedule, enabled=settings.schedule_enabled),
            simulate=settings.server_simulation,
        )

    # Startup and restore

    def start(self, restored: Dict[str, Any] | None = None) -> bool:
        """Adopt a restored document or begin a fresh pregame. Returns True on restore."""
        if restored and self._restore(restored):
            logger.info("Loaded game state from disk: %s", self.describe())
            return True
        logger.info("No saved state found, starting fresh")
        self._enter_pre_run(PregamePhase.PALETTE)
        self._changed("fresh session", source="startup")
        return False

    def _restore(self, document: Dict[str, Any]) -> bool:
        """Install a saved document only after every part of it has parsed."""
        try:
            session = SessionState.from_dict(
                document.get("session") or {},
                defaults=SessionState(spawn_chance=self.simulation.initial_spawn_chance),
            )
            schedule_enabled = document.get("schedule_enabled", self.schedule.enabled)
            if not isinstance(schedule_enabled, bool):
                raise TypeError(f"schedule_enabled must be a boolean, not {schedule_enabled!r}")
            state_version = int(document.get("state_version") or 0)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning("Discarding malformed saved session: %s", exc)
            return False
        board = self._decode_grid(document.get("grid"))

        if board is None:
            self.simulation.reset()
        else:
            self.simulation.install(*board)
        self.session = session
        self.simulation.spawn_chance = session.spawn_chance
        self.renderer.set_colors(session.team_colors)
        self.schedule.enabled = schedule_enabled
        self.state_version = state_version + 1
        self._sync_session()
        return True

    def _decode_grid(self, grid_doc: Any) -> tuple | None:
        """Saved board arrays, or None when the board must be regenerated."""
        if not isinstance(grid_doc, dict):
            return None
        dims = grid_doc.get("grid_dimensions")
        if not isinstance(dims, dict):
            logger.warning("Discarding saved grid without grid_dimensions: %r", dims)
            return None
        if dims.get("rows") != self.rows or dims.get("cols") != self.cols:
            logger.info(
                "Saved grid is %sx%s but this board is %sx%s, starting a new grid",
                dims.get("rows"),
                dims.get("cols"),
                self.rows,
                self.cols,
            )
            return None
        try:
            return self.simulation.decode_snapshot(
                grid_doc.get("grid"),
                grid_doc.get("trail_color"),
                grid_doc.get("trail_brightness"),
            )
        except SnapshotError as exc:
            logger.warning("Discarding saved grid: %s", exc)
            return None

    # Lifecycle

    def transition(
        self,
        state: LifecycleState | str,
        phase: PregamePhase | str | None = None,
        source: str = "admin",
    ) -> bool:
        """Move to ``state``; returns False when nothing changed."""
        target = _parse_state(state)
        target_phase = _parse_phase(phase)
        session = self.session
        current = session.lifecycle_state

        if target is current:
            if (
                target is LifecycleState.PRE_RUN
                and target_phase is not None
                and target_phase is not session.pregame_phase
            ):
                session.pregame_phase = target_phase
                self._changed(f"phase -> {target_phase.value}", source)
                return True
            return False

        if target is LifecycleState.PAUSED:
            session.resume_state = current
            session.lifecycle_state = LifecycleState.PAUSED
        elif current is LifecycleState.PAUSED and target is session.resume_state:
            session.lifecycle_state = target
            session.resume_state = None
            if target is LifecycleState.PRE_RUN and target_phase is not None:
                session.pregame_phase = target_phase
        else:
            prior = session.resume_state if current is LifecycleState.PAUSED else current
            session.resume_state = None
            self._enter(target, prior, target_phase)
        self._changed(f"{current.value} -> {target.value}", source)
        return True

    def advance_phase(self, source: str = "admin") -> bool:
        session = self.session
        if session.lifecycle_state is not LifecycleState.PRE_RUN:
            raise TransitionError("Phase can only be advanced during pregame")
        index = PHASE_ORDER.index(session.pregame_phase)
        if index == len(PHASE_ORDER) - 1:
            return self.transition(LifecycleState.RUNNING, source=source)
        session.pregame_phase = PHASE_ORDER[index + 1]
        self._changed(f"phase -> {session.pregame_phase.value}", source)
        return True

    def set_event(self, event: GameEvent | str | None, source: str = "admin") -> bool:
        try:
            parsed = parse_event(event)
        except ValueError as exc:
            raise TransitionError(f"Unknown event: {event!r}") from exc
        if parsed is self.session.active_event:
            return False
        # ending a drought leaves the lowered spawn chance in place
        self.session.active_event = parsed
        self._comet_ticks = 0
        self._changed(f"event -> {parsed.value if parsed else 'none'}", source)
        return True

    def reset_spawn_chance(self, source: str = "admin") -> None:
        self.simulation.reset_spawn_chance()
        self._changed("spawn chance reset", source)

    def toggle_schedule(self, enabled: bool | None = None, source: str = "admin") -> bool:
        self.schedule.enabled = (not self.schedule.enabled) if enabled is None else bool(enabled)
        self._last_expected = None
        self._changed(f"schedule {'enabled' if self.schedule.enabled else 'disabled'}", source)
        return self.schedule.enabled

    def hard_reset(self, source: str = "admin") -> None:
        """Forget the session (memory and disk) and start a new pregame."""
        self.persistence.clear_session()
        self.schedule.enabled = False
        self._last_expected = None
        self._comet_ticks = 0
        self.simulation.reset_spawn_chance()
        self.session = SessionState(spawn_chance=self.simulation.spawn_chance)
        self._enter_pre_run(PregamePhase.PALETTE)
        self._changed("hard reset", source)

    def _enter(
        self,
        target: LifecycleState,
        prior: LifecycleState | None,
        phase: PregamePhase | None,
    ) -> None:
        session = self.session
        if target is LifecycleState.PRE_RUN:
            self._enter_pre_run(phase or PregamePhase.PALETTE)
            return
        if target is LifecycleState.RUNNING:
            session.pregame_phase = PregamePhase.READY
            if prior is LifecycleState.PRE_RUN:
                self.simulation.reset()
        elif target is LifecycleState.GAME_OVER:
            self._enter_game_over()
        elif target is LifecycleState.NIGHT:
            self._ensure_night_palette()
        session.lifecycle_state = target

    def _enter_pre_run(self, phase: PregamePhase) -> None:
        session = self.session
        palette = self.catalog.random_day_palette(self.rng)
        category, names = self.catalog.random_teams(self.rng)
        self._apply_palette(palette)
        session.category_name = category
        session.team_names = names
        session.pregame_phase = phase
        session.pregame_start_time = self.clock()
        session.game_over_start_time = None
        session.winner = None
        session.lifecycle_state = LifecycleState.PRE_RUN
        self.simulation.reset()

    def _enter_game_over(self) -> None:
        session = self.session
        session.team_counts = self.simulation.count_teams()
        session.winner = compute_winner(session.team_counts, session.team_names, session.team_colors)
        session.game_over_start_time = self.clock()
        # stats are tallied against the day palette, before night colors go up
        self.persistence.record_game_end(session.winner, session.palette_name, session.category_name)
        self._ensure_night_palette()

    def _ensure_night_palette(self) -> None:
        if not self.session.is_night_palette:
            self._apply_palette(self.catalog.random_night_palette(self.rng))

    def _apply_palette(self, palette: Palette) -> None:
        self.session.team_colors = [DEAD_COLOR, *palette.colors]
        self.session.palette_name = palette.name
        self.session.is_night_palette = palette.night
        self.renderer.set_colors(self.session.team_colors)

    # Ticking

    def tick_once(self) -> None:
        """Advance timers, schedule, events and (when enabled) one generation."""
        self.tick += 1
        if self.session.lifecycle_state is LifecycleState.PAUSED:
            return
        now = self.clock()
        self._apply_schedule()
        self._apply_timers(now)

        session = self.session
        sim = self.simulation
        if session.active_event is GameEvent.DROUGHT:
            sim.lower_spawn_chance()
        if self.simulate:
            if session.active_event is GameEvent.COMETS and self.comet_interval_ticks > 0:
                self._comet_ticks += 1
                if self._comet_ticks % self.comet_interval_ticks == 0:
                    sim.spawn_comet()
            if session.lifecycle_state in SIMULATING_STATES:
                sim.next_generation()
            self.renderer.update_and_draw(
                sim.grid, sim.trail_color, sim.trail_brightness, out=self._framebuffer
            )
            sim.count_teams()
            if self.scoreboard_interval_ticks > 0 and self.tick % self.scoreboard_interval_ticks == 0:
                self.scoreboard.offer(self.scoreboard_payload(), now)
        self._sync_session()

        if self.grid_backup_seconds > 0 and now - self._last_backup >= self.grid_backup_seconds:
            self._last_backup = now
            self._schedule_save()

    def _apply_schedule(self) -> None:
        """Follow the timetable, but only when its expected state changes."""
        if not self.schedule.enabled:
            return
        expected = self.schedule.expected(self.wall_clock())
        if expected == self._last_expected:
            return
        self._last_expected = expected
        state, phase = expected
        self.transition(state, phase if state is LifecycleState.PRE_RUN else None, source="schedule")

    def _apply_timers(self, now: float) -> None:
        session = self.session
        if session.lifecycle_state is LifecycleState.PRE_RUN:
            if self.schedule.enabled or session.pregame_start_time is None:
                return
            unlocked = self._phase_for_elapsed(now - session.pregame_start_time)
            if PHASE_ORDER.index(unlocked) > PHASE_ORDER.index(session.pregame_phase):
                session.pregame_phase = unlocked
                self._changed(f"phase -> {unlocked.value}", source="timer")
        elif session.lifecycle_state is LifecycleState.GAME_OVER:
            started = session.game_over_start_time
            if started is not None and now - started >= self.night_mode_delay:
                self.transition(LifecycleState.NIGHT, source="timer")

    def _phase_for_elapsed(self, elapsed: float) -> PregamePhase:
        phase = PregamePhase.PALETTE
        if self.teams_reveal_seconds > 0 and elapsed >= self.teams_reveal_seconds:
            phase = PregamePhase.TEAMS
        if self.stats_reveal_seconds > 0 and elapsed >= self.stats_reveal_seconds:
            phase = PregamePhase.STATS
        return phase

    # Sync

    def apply_grid_push(self, payload: Dict[str, Any]) -> None:
        """Adopt a display's board snapshot. Lifecycle fields are never read."""
        dims = payload.get("grid_dimensions")
        if not isinstance(dims, dict):
            raise SnapshotError("grid_dimensions must be an object with rows and cols")
        if dims.get("rows") != self.rows or dims.get("cols") != self.cols:
            raise SnapshotError(
                f"Grid {dims.get('rows')}x{dims.get('cols')} does not match "
                f"{self.rows}x{self.cols}"
            )
        event = self.session.active_event
        if "active_event" in payload:
            try:
                event = parse_event(payload.get("active_event"))
            except ValueError as exc:
                raise SnapshotError(f"Unknown event: {payload.get('active_event')!r}") from exc
        spawn_chance = payload.get("spawn_chance")
        if spawn_chance is not None and not 0.0 <= float(spawn_chance) <= 1.0:
            raise SnapshotError("spawn_chance must be within 0..1")
        self.simulation.load_snapshot(
            payload.get("grid"),
            payload.get("trail_color"),
            payload.get("trail_brightness"),
            trail=payload.get("trail"),
        )
        self.session.active_event = event
        if spawn_chance is not None:
            self.simulation.spawn_chance = float(spawn_chance)
        self._sync_session()
        self._schedule_save()

    def render_state(self, include_grid: bool = False) -> Dict[str, Any]:
        self._sync_session()
        data = self.session.to_dict()
        data.update(
            {
                "state_version": self.state_version,
                "schedule_enabled": self.schedule.enabled,
                "event_label": event_label(self.session.active_event),
                "night_mode_delay": self.night_mode_delay,
                "grid_dimensions": {"rows": self.rows, "cols": self.cols},
                "generation": self.simulation.generation,
                "tick": self.tick,
            }
        )
        if include_grid:
            data.update(self.simulation.export_snapshot())
        return data

    def export_state(self) -> Dict[str, Any]:
        self._sync_session()
        return {
            "session": self.session.to_dict(),
            "state_version": self.state_version,
            "schedule_enabled": self.schedule.enabled,
            "grid": self.simulation.export_snapshot(),
            "summary": self.describe(),
        }

    def scoreboard_payload(self) -> Dict[str, Any]:
        session = self.session
        counts = self.simulation.team_counts
        return {
            "teams": [
                {
                    "name": session.team_names[i - 1] or f"Team {i}",
                    "color": session.team_colors[i],
                    "count": counts[i],
                }
                for i in range(1, NUM_TEAMS + 1)
            ],
            "event": event_label(session.active_event),
        }

    def framebuffer(self) -> np.ndarray:
        if not self.simulate:
            sim = self.simulation
            self.renderer.draw(sim.trail_color, sim.trail_brightness, out=self._framebuffer)
        return self._framebuffer

    def describe(self) -> str:
        session = self.session
        scores = ", ".join(
            f"{session.team_names[i - 1] or f'Team {i}'}: {session.team_counts[i]:,}"
            for i in range(1, NUM_TEAMS + 1)
        )
        return f"[{session.lifecycle_state.value}/{session.pregame_phase.value}] {scores}"

    def _sync_session(self) -> None:
        self.session.spawn_chance = self.simulation.spawn_chance
        self.session.team_counts = list(self.simulation.team_counts)

    def _changed(self, what: str, source: str) -> None:
        self.state_version += 1
        self._sync_session()
        logger.info("[%s] v%s %s %s", source, self.state_version, what, self.describe())
        self._schedule_save()

    def _schedule_save(self) -> None:
        self.persistence.schedule_save(self.export_state())


def _parse_state(value: LifecycleState | str) -> LifecycleState:
    try:
        return LifecycleState(value)
    except ValueError as exc:
        raise TransitionError(f"Unknown lifecycle state: {value!r}") from exc


def _parse_phase(value: PregamePhase | str | None) -> PregamePhase | None:
    if value is None or value == "":
        return None
    try:
        return PregamePhase(value)
    except ValueError as exc:
        raise TransitionError(f"Unknown pregame phase: {value!r}") from exc
