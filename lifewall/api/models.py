from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class GridDimensions(BaseModel):
    rows: int
    cols: int


class GridPushRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    grid: List[List[int]]
    grid_dimensions: GridDimensions
    trail_color: Optional[List[List[int]]] = None
    trail_brightness: Optional[List[List[int]]] = None
    trail: Optional[List[List[dict]]] = None
    team_counts: Optional[List[int]] = None
    active_event: Optional[str] = None
    spawn_chance: Optional[float] = None


class TransitionRequest(BaseModel):
    state: str
    phase: Optional[str] = None


class EventRequest(BaseModel):
    event: Optional[str] = None


class ScheduleToggleRequest(BaseModel):
    enabled: Optional[bool] = None


class ControlResponse(BaseModel):
    status: str = "ok"
    changed: bool
    state_version: int
    lifecycle_state: str
    pregame_phase: str


class ScheduleExpected(BaseModel):
    state: str
    phase: Optional[str] = None


class ScheduleResponse(BaseModel):
    enabled: bool
    schedule: Dict[str, str]
    expected: ScheduleExpected
    server_time: str


class ScoreTeam(BaseModel):
    name: str
    color: Optional[str] = None
    count: int = 0


class ScoresPayload(BaseModel):
    teams: List[ScoreTeam]
    event: Optional[str] = None


class ScoresResponse(BaseModel):
    teams: List[ScoreTeam]
    event: str
    last_updated: Optional[str] = None


class WinnerInfo(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    count: int = 0


class GameEndRequest(BaseModel):
    winner: Optional[WinnerInfo] = None
    palette: Optional[str] = None
    category: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    state_version: int
    lifecycle_state: str
    tick: int
