from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from lifewall.common.constants import NUM_TEAMS
from lifewall.common.types import CatalogError


@dataclass(frozen=True)
class Palette:
    name: str
    colors: tuple[str, ...]
    night: bool = False


@dataclass(frozen=True)
class TeamCategory:
    name: str
    teams: tuple[str, ...]


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise CatalogError(f"Catalog file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"Catalog file unreadable: {path}") from exc


def _parse_palettes(entries: Any, night: bool) -> List[Palette]:
    palettes: List[Palette] = []
    for entry in entries or []:
        colors = tuple(entry.get("colors", []))
        if len(colors) != NUM_TEAMS:
            raise CatalogError(f"Palette {entry.get('name')!r} needs {NUM_TEAMS} colors")
        palettes.append(Palette(name=str(entry["name"]), colors=colors, night=night))
    return palettes


class Catalog:
    """Palettes and team-name categories the game rolls from."""

    def __init__(
        self,
        day_palettes: List[Palette],
        night_palettes: List[Palette],
        categories: List[TeamCategory],
    ) -> None:
        if not day_palettes or not night_palettes:
            raise CatalogError("Catalog needs at least one day and one night palette")
        if not categories:
            raise CatalogError("Catalog needs at least one team category")
        for category in categories:
            if len(category.teams) < NUM_TEAMS:
                raise CatalogError(
                    f"Category {category.name!r} needs at least {NUM_TEAMS} team names"
                )
        self.day_palettes = day_palettes
        self.night_palettes = night_palettes
        self.categories = categories

    @classmethod
    def load(cls, palettes_path: str | Path, teams_path: str | Path) -> "Catalog":
        palettes = _read_json(Path(palettes_path))
        teams = _read_json(Path(teams_path))
        try:
            categories = [
                TeamCategory(name=str(c["name"]), teams=tuple(str(t) for t in c["teams"]))
                for c in teams.get("categories", [])
            ]
            return cls(
                _parse_palettes(palettes.get("day"), night=False),
                _parse_palettes(palettes.get("night"), night=True),
                categories,
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise CatalogError("Catalog files are malformed") from exc

    def random_day_palette(self, rng: random.Random) -> Palette:
        return rng.choice(self.day_palettes)

    def random_night_palette(self, rng: random.Random) -> Palette:
        return rng.choice(self.night_palettes)

    def random_teams(self, rng: random.Random) -> tuple[str, list[str]]:
        """Pick a category and draw four distinct names from it."""
        category = rng.choice(self.categories)
        return category.name, rng.sample(list(category.teams), NUM_TEAMS)
