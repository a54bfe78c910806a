from __future__ import annotations

from enum import Enum


class LifecycleState(str, Enum):
    PRE_RUN = "preRun"
    RUNNING = "running"
    GAME_OVER = "gameOver"
    NIGHT = "night"
    PAUSED = "paused"


class PregamePhase(str, Enum):
    PALETTE = "palette"
    TEAMS = "teams"
    STATS = "stats"
    READY = "ready"


class GameEvent(str, Enum):
    COMETS = "comets"
    DROUGHT = "drought"


PHASE_ORDER = (
    PregamePhase.PALETTE,
    PregamePhase.TEAMS,
    PregamePhase.STATS,
    PregamePhase.READY,
)

SIMULATING_STATES = frozenset(
    {LifecycleState.RUNNING, LifecycleState.GAME_OVER, LifecycleState.NIGHT}
)


class LifewallError(Exception):
    """Base error for rejected operations."""


class TransitionError(LifewallError):
    """Invalid lifecycle request; nothing was mutated."""


class SnapshotError(LifewallError):
    """Grid or trail data that cannot be applied as a whole."""


class CatalogError(LifewallError):
    """Palette or team-name data could not be loaded."""
