from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lifewall.common.constants import DEFAULT_TEAM_COLORS, NUM_TEAMS
from lifewall.common.types import GameEvent, LifecycleState, PregamePhase


def parse_event(value: Any) -> Optional[GameEvent]:
    """``None``, ``""`` and ``"none"`` mean no event; anything unknown raises ValueError."""
    if value is None or isinstance(value, GameEvent):
        return value
    text = str(value).strip().lower()
    if text in {"", "none", "null"}:
        return None
    return GameEvent(text)


@dataclass
class SessionState:
    lifecycle_state: LifecycleState = LifecycleState.PRE_RUN
    pregame_phase: PregamePhase = PregamePhase.PALETTE
    pregame_start_time: float | None = None
    game_over_start_time: float | None = None
    team_colors: List[str] = field(default_factory=lambda: list(DEFAULT_TEAM_COLORS))
    palette_name: str = ""
    is_night_palette: bool = False
    category_name: str = ""
    team_names: List[str] = field(default_factory=lambda: [""] * NUM_TEAMS)
    team_counts: List[int] = field(default_factory=lambda: [0] * (NUM_TEAMS + 1))
    active_event: GameEvent | None = None
    spawn_chance: float = 0.0
    resume_state: LifecycleState | None = None  # set while paused
    winner: Dict[str, Any] | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lifecycle_state": self.lifecycle_state.value,
            "pregame_phase": self.pregame_phase.value,
            "pregame_start_time": self.pregame_start_time,
            "game_over_start_time": self.game_over_start_time,
            "team_colors": list(self.team_colors),
            "palette_name": self.palette_name,
            "is_night_palette": self.is_night_palette,
            "category_name": self.category_name,
            "team_names": list(self.team_names),
            "team_counts": list(self.team_counts),
            "active_event": self.active_event.value if self.active_event else None,
            "spawn_chance": self.spawn_chance,
            "resume_state": self.resume_state.value if self.resume_state else None,
            "winner": dict(self.winner) if self.winner else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: "SessionState | None" = None) -> "SessionState":
        """Rebuild from a persisted document; absent optional fields keep defaults.

        Raises ValueError/TypeError on values that cannot be interpreted.
        """
        base = defaults or cls()
        if "lifecycle_state" not in data:
            raise ValueError("Saved session has no lifecycle_state")
        team_colors = list(data.get("team_colors") or base.team_colors)
        team_names = list(data.get("team_names") or base.team_names)
        team_counts = [int(n) for n in (data.get("team_counts") or base.team_counts)]
        if len(team_colors) != NUM_TEAMS + 1 or len(team_names) != NUM_TEAMS:
            raise ValueError("Saved session has the wrong number of teams")
        if len(team_counts) != NUM_TEAMS + 1:
            team_counts = [0] * (NUM_TEAMS + 1)
        resume = data.get("resume_state")
        return cls(
            lifecycle_state=LifecycleState(data["lifecycle_state"]),
            pregame_phase=PregamePhase(data.get("pregame_phase") or base.pregame_phase),
            pregame_start_time=_optional_float(data.get("pregame_start_time")),
            game_over_start_time=_optional_float(data.get("game_over_start_time")),
            team_colors=[str(c) for c in team_colors],
            palette_name=str(data.get("palette_name") or ""),
            is_night_palette=bool(data.get("is_night_palette", False)),
            category_name=str(data.get("category_name") or ""),
            team_names=[str(n) for n in team_names],
            team_counts=team_counts,
            active_event=parse_event(data.get("active_event")),
            spawn_chance=float(data.get("spawn_chance", base.spawn_chance)),
            resume_state=LifecycleState(resume) if resume else None,
            winner=data.get("winner") if isinstance(data.get("winner"), dict) else None,
        )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)
