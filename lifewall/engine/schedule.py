from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Tuple

from lifewall.common.config import DEFAULT_SCHEDULE
from lifewall.common.types import LifecycleState, PregamePhase

Expected = Tuple[LifecycleState, Optional[PregamePhase]]


def parse_time_to_minutes(value: str) -> int:
    hours, _, minutes = value.partition(":")
    total = int(hours) * 60 + int(minutes or 0)
    if not 0 <= total < 24 * 60:
        raise ValueError(f"Invalid time of day: {value!r}")
    return total


class Schedule:
    """Daily timetable mapping wall-clock time to a lifecycle state."""

    def __init__(self, times: Dict[str, str] | None = None, enabled: bool = False) -> None:
        self.times = dict(DEFAULT_SCHEDULE)
        if times:
            self.times.update(times)
        self.minutes = {key: parse_time_to_minutes(value) for key, value in self.times.items()}
        self.enabled = enabled

    def expected(self, now: datetime) -> Expected:
        minute = now.hour * 60 + now.minute
        m = self.minutes
        if minute >= m["night_start"] or minute < m["pregame_start"]:
            return LifecycleState.NIGHT, None
        if minute >= m["game_end"]:
            return LifecycleState.GAME_OVER, None
        if minute >= m["game_start"]:
            return LifecycleState.RUNNING, PregamePhase.READY
        if minute >= m["reveal_stats"]:
            return LifecycleState.PRE_RUN, PregamePhase.STATS
        if minute >= m["reveal_teams"]:
            return LifecycleState.PRE_RUN, PregamePhase.TEAMS
        return LifecycleState.PRE_RUN, PregamePhase.PALETTE

    def to_dict(self, now: datetime) -> dict:
        state, phase = self.expected(now)
        return {
            "enabled": self.enabled,
            "schedule": dict(self.times),
            "expected": {"state": state.value, "phase": phase.value if phase else None},
            "server_time": now.isoformat(),
        }
