NUM_TEAMS = 4
DEAD = 0
BRIGHTNESS_MAX = 200
SCHEMA_VERSION = 1

# ABGR, matches a little-endian canvas Uint32Array pixel.
BLACK_PIXEL = 0xFF000000

DEAD_COLOR = "#000000"
DEFAULT_TEAM_COLORS = [DEAD_COLOR, "#E63946", "#457B9D", "#2A9D8F", "#F4A261"]

TARGET_WIDTH = 1920
TARGET_HEIGHT = 1080

NO_EVENT_LABEL = "NO EVENT"
EVENT_LABELS = {
    "comets": "COMETS!",
    "drought": "DROUGHT!",
}
