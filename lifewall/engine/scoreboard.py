from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List

from lifewall.common.constants import DEFAULT_TEAM_COLORS, NO_EVENT_LABEL, NUM_TEAMS


def default_teams() -> List[Dict[str, Any]]:
    return [
        {"name": f"Team {i}", "color": DEFAULT_TEAM_COLORS[i], "count": 0}
        for i in range(1, NUM_TEAMS + 1)
    ]


class Scoreboard:
    """Latest standings for the external score display.

    Writes from the simulation are rate limited; reads are not.
    """

    def __init__(self, min_interval: float = 120.0) -> None:
        self.min_interval = min_interval
        self.last_offer: float | None = None
        self._latest: Dict[str, Any] = {
            "teams": default_teams(),
            "event": NO_EVENT_LABEL,
            "last_updated": None,
        }

    def update(self, payload: Dict[str, Any]) -> None:
        self._latest = {
            "teams": copy.deepcopy(payload.get("teams", [])),
            "event": payload.get("event") or NO_EVENT_LABEL,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }

    def offer(self, payload: Dict[str, Any], now: float, force: bool = False) -> bool:
        if not force and self.last_offer is not None and now - self.last_offer < self.min_interval:
            return False
        self.last_offer = now
        self.update(payload)
        return True

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._latest)
