from __future__ import annotations

import math
import re
from typing import Sequence

import numpy as np

from lifewall.common.constants import BLACK_PIXEL, BRIGHTNESS_MAX, DEAD, NUM_TEAMS

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})?$", re.IGNORECASE)


def hex_to_rgb(value: str | None) -> tuple[int, int, int]:
    match = _HEX_RE.match(value or "")
    if not match:
        return (0, 0, 0)
    return (int(match.group(1), 16), int(match.group(2), 16), int(match.group(3), 16))


def fade_amount_for(trail_fade: float) -> int:
    """Convert a 0..1 per-tick fade into brightness steps."""
    return int(math.floor(trail_fade * BRIGHTNESS_MAX + 0.5))


def build_color_cache(team_colors: Sequence[str]) -> np.ndarray:
    """Brightness-indexed pixel table, shape ``(NUM_TEAMS + 1, BRIGHTNESS_MAX + 1)``.

    Pixels are packed ABGR so the buffer can be blitted as little-endian
    RGBA bytes. Row 0 (dead) is always black.
    """
    if len(team_colors) != NUM_TEAMS + 1:
        raise ValueError(f"Expected {NUM_TEAMS + 1} colors, got {len(team_colors)}")
    rgb = np.array([hex_to_rgb(color) for color in team_colors], dtype=np.uint32)
    rgb[DEAD] = 0
    levels = np.arange(BRIGHTNESS_MAX + 1, dtype=np.uint32)
    scaled = (rgb[:, None, :] * levels[None, :, None]) // BRIGHTNESS_MAX
    red = scaled[..., 0]
    green = scaled[..., 1]
    blue = scaled[..., 2]
    return (np.uint32(BLACK_PIXEL) | (blue << 16) | (green << 8) | red).astype(np.uint32)


class TrailRenderer:
    """Fading afterglow of live cells, drawn through a lookup table."""

    def __init__(
        self,
        team_colors: Sequence[str],
        fade_amount: int = 1,
        show_trails: bool = True,
        trails_only: bool = False,
    ) -> None:
        self.fade_amount = fade_amount
        self.show_trails = show_trails
        self.trails_only = trails_only
        self.set_colors(team_colors)

    def set_colors(self, team_colors: Sequence[str]) -> None:
        self.team_colors = list(team_colors)
        self.color_cache = build_color_cache(self.team_colors)

    def update_trail(
        self, grid: np.ndarray, trail_color: np.ndarray, trail_brightness: np.ndarray
    ) -> None:
        live = grid > DEAD
        faded = trail_brightness.astype(np.int16) - self.fade_amount
        np.maximum(faded, 0, out=faded)
        trail_brightness[...] = np.where(live, BRIGHTNESS_MAX, faded)
        trail_color[live] = grid[live]
        # zero brightness must not keep a stale color
        trail_color[trail_brightness == 0] = DEAD

    def draw(
        self,
        trail_color: np.ndarray,
        trail_brightness: np.ndarray,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        """Return the ``rows * cols`` framebuffer, one uint32 pixel per cell."""
        pixels = self.color_cache[trail_color, trail_brightness]
        if not self.show_trails:
            pixels[trail_brightness < BRIGHTNESS_MAX] = BLACK_PIXEL
        if self.trails_only:
            pixels[trail_brightness == BRIGHTNESS_MAX] = BLACK_PIXEL
        flat = pixels.ravel()
        if out is None:
            return flat
        out[:] = flat
        return out

    def update_and_draw(
        self,
        grid: np.ndarray,
        trail_color: np.ndarray,
        trail_brightness: np.ndarray,
        out: np.ndarray | None = None,
    ) -> np.ndarray:
        self.update_trail(grid, trail_color, trail_brightness)
        return self.draw(trail_color, trail_brightness, out=out)
