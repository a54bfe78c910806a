from __future__ import annotations

from typing import Any, Dict, Optional

# Documents written by older display builds used camelCase keys.
_LEGACY_KEYS = {
    "lastWinner": "last_winner",
    "mostPlayedPalette": "most_played_palette",
    "mostPlayedCategory": "most_played_category",
    "highestScore": "highest_score",
    "paletteCounts": "palette_counts",
    "categoryCounts": "category_counts",
    "gamesPlayed": "games_played",
}


def default_stats() -> Dict[str, Any]:
    return {
        "last_winner": {"name": None, "color": None, "date": None},
        "most_played_palette": {"name": None, "count": 0},
        "most_played_category": {"name": None, "count": 0},
        "highest_score": {"name": None, "color": None, "count": 0, "date": None},
        "palette_counts": {},
        "category_counts": {},
        "games_played": 0,
    }


def merge_stats(data: Any) -> Dict[str, Any]:
    """Overlay a loaded document onto the defaults, ignoring junk fields."""
    stats = default_stats()
    if not isinstance(data, dict):
        return stats
    for key, value in data.items():
        key = _LEGACY_KEYS.get(key, key)
        if key not in stats:
            continue
        default = stats[key]
        if isinstance(default, dict) and isinstance(value, dict):
            if key.endswith("_counts"):
                stats[key] = {str(k): int(v) for k, v in value.items() if isinstance(v, (int, float))}
            else:
                stats[key] = {**default, **value}
        elif isinstance(default, int) and isinstance(value, (int, float)):
            stats[key] = int(value)
    if stats["highest_score"].get("count") is None:
        stats["highest_score"]["count"] = 0
    return stats


def _most_played(counts: Dict[str, int]) -> Dict[str, Any]:
    name = None
    best = 0
    for key, count in counts.items():
        if count > best:
            best = count
            name = key
    return {"name": name, "count": best}


def apply_game_end(
    stats: Dict[str, Any],
    winner: Optional[Dict[str, Any]],
    palette: Optional[str],
    category: Optional[str],
    date: str,
) -> Dict[str, Any]:
    """Fold one finished game into the aggregate stats (in place)."""
    stats = stats if stats else default_stats()
    stats["games_played"] += 1
    if winner:
        stats["last_winner"] = {
            "name": winner.get("name"),
            "color": winner.get("color"),
            "date": date,
        }
        count = int(winner.get("count") or 0)
        if count > int(stats["highest_score"].get("count") or 0):
            stats["highest_score"] = {
                "name": winner.get("name"),
                "color": winner.get("color"),
                "count": count,
                "date": date,
            }
    if palette:
        counts = stats["palette_counts"]
        counts[palette] = counts.get(palette, 0) + 1
        stats["most_played_palette"] = _most_played(counts)
    if category:
        counts = stats["category_counts"]
        counts[category] = counts.get(category, 0) + 1
        stats["most_played_category"] = _most_played(counts)
    return stats
