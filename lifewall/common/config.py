from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_DATA_DIR = Path(__file__).resolve().parents[1] / "data"

DEFAULT_SCHEDULE = {
    "pregame_start": "08:45",
    "reveal_teams": "08:50",
    "reveal_stats": "09:00",
    "game_start": "09:15",
    "game_end": "17:00",
    "night_start": "17:10",
}


def _env_bool(value: str, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _parse_origins(value: str | None) -> list[str]:
    if not value:
        return [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def _parse_schedule(value: str | None) -> dict[str, str]:
    """Parse ``key=HH:MM`` pairs, e.g. ``game_start=09:30,game_end=16:00``."""
    schedule = dict(DEFAULT_SCHEDULE)
    if not value:
        return schedule
    for item in value.split(","):
        if "=" not in item:
            continue
        key, _, hhmm = item.partition("=")
        key = key.strip().lower()
        if key in schedule and hhmm.strip():
            schedule[key] = hhmm.strip()
    return schedule


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables.

    Core classes take explicit arguments; this object only feeds the
    server and display entry points.
    """

    state_path: str = os.getenv("LIFEWALL_STATE_PATH", "data/gameState.json")
    stats_path: str = os.getenv("LIFEWALL_STATS_PATH", "data/stats.json")
    palettes_path: str = os.getenv("LIFEWALL_PALETTES_PATH", str(_DATA_DIR / "palettes.json"))
    teams_path: str = os.getenv("LIFEWALL_TEAMS_PATH", str(_DATA_DIR / "teams.json"))
    display_width: int = int(os.getenv("LIFEWALL_DISPLAY_WIDTH", "1920"))
    display_height: int = int(os.getenv("LIFEWALL_DISPLAY_HEIGHT", "1080"))
    base_cell_size: int = int(os.getenv("LIFEWALL_BASE_CELL_SIZE", "8"))
    tick_seconds: float = float(os.getenv("LIFEWALL_TICK_SECONDS", "0.1"))
    initial_density: float = float(os.getenv("LIFEWALL_INITIAL_DENSITY", "0.5"))
    trail_fade: float = float(os.getenv("LIFEWALL_TRAIL_FADE", "0.005"))
    initial_spawn_chance: float = float(os.getenv("LIFEWALL_SPAWN_CHANCE", "0.00005"))
    drought_decrement: float = float(os.getenv("LIFEWALL_DROUGHT_DECREMENT", "0.0001"))
    comet_min_radius: int = int(os.getenv("LIFEWALL_COMET_MIN_RADIUS", "3"))
    comet_max_radius: int = int(os.getenv("LIFEWALL_COMET_MAX_RADIUS", "12"))
    comet_interval_ticks: int = int(os.getenv("LIFEWALL_COMET_INTERVAL_TICKS", "7"))
    night_mode_delay_seconds: float = float(os.getenv("LIFEWALL_NIGHT_MODE_DELAY", "600"))
    teams_reveal_seconds: float = float(os.getenv("LIFEWALL_TEAMS_REVEAL_SECONDS", "300"))
    stats_reveal_seconds: float = float(os.getenv("LIFEWALL_STATS_REVEAL_SECONDS", "900"))
    save_debounce_seconds: float = float(os.getenv("LIFEWALL_SAVE_DEBOUNCE", "5"))
    save_max_delay_seconds: float = float(os.getenv("LIFEWALL_SAVE_MAX_DELAY", "30"))
    max_state_age_seconds: float = float(os.getenv("LIFEWALL_MAX_STATE_AGE", "86400"))
    grid_backup_seconds: float = float(os.getenv("LIFEWALL_GRID_BACKUP_SECONDS", "60"))
    scoreboard_interval_ticks: int = int(os.getenv("LIFEWALL_SCOREBOARD_INTERVAL_TICKS", "5"))
    scoreboard_min_interval_seconds: float = float(
        os.getenv("LIFEWALL_SCOREBOARD_MIN_INTERVAL", "120")
    )
    schedule: dict[str, str] = field(
        default_factory=lambda: _parse_schedule(os.getenv("LIFEWALL_SCHEDULE"))
    )
    schedule_enabled: bool = _env_bool(os.getenv("LIFEWALL_SCHEDULE_ENABLED", "0"))
    random_seed: int | None = (
        int(os.environ["LIFEWALL_RANDOM_SEED"]) if os.getenv("LIFEWALL_RANDOM_SEED") else None
    )
    enable_tick_loop: bool = _env_bool(os.getenv("LIFEWALL_ENABLE_TICK_LOOP", "1"))
    server_simulation: bool = _env_bool(os.getenv("LIFEWALL_SERVER_SIMULATION", "1"))
    cors_origins: list[str] = field(
        default_factory=lambda: _parse_origins(os.getenv("LIFEWALL_CORS_ORIGINS"))
    )
    api_key: str | None = os.getenv("LIFEWALL_API_KEY")
    host: str = os.getenv("LIFEWALL_HOST", "0.0.0.0")
    port: int = int(os.getenv("LIFEWALL_PORT", "3000"))
    poll_interval_seconds: float = float(os.getenv("LIFEWALL_POLL_INTERVAL", "10"))
    grid_push_interval_seconds: float = float(os.getenv("LIFEWALL_GRID_PUSH_INTERVAL", "60"))
    log_level: str = os.getenv("LIFEWALL_LOG_LEVEL", "INFO")


settings = Settings()
