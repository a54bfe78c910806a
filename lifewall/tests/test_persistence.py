import json
import logging
import tempfile
import threading
import time
from pathlib import Path

from lifewall.common.constants import SCHEMA_VERSION
from lifewall.persist.jsonfile import JsonFilePersistence
from lifewall.persist.stats import apply_game_end, default_stats, merge_stats


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _make_persistence(tmpdir: str, **kwargs) -> JsonFilePersistence:
    kwargs.setdefault("debounce_seconds", 0.05)
    kwargs.setdefault("max_delay_seconds", 0.5)
    return JsonFilePersistence(
        str(Path(tmpdir) / "gameState.json"),
        str(Path(tmpdir) / "stats.json"),
        **kwargs,
    )


def test_save_then_load_session():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir)
        persistence.schedule_save({"session": {"lifecycle_state": "running"}, "summary": "x"})
        persistence.flush()

        loaded = persistence.load_session()
        assert loaded["session"] == {"lifecycle_state": "running"}
        assert loaded["version"] == SCHEMA_VERSION
        assert loaded["saved_at"]
        persistence.close()


def test_burst_of_saves_coalesces_into_one_write():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir, debounce_seconds=1.0, max_delay_seconds=5.0)
        for i in range(5):
            persistence.schedule_save({"n": i})
        persistence.flush()

        assert persistence.saves == 1
        data = json.loads((Path(tmpdir) / "gameState.json").read_text(encoding="utf-8"))
        assert data["n"] == 4
        persistence.close()


def test_save_waits_for_quiet_period():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir, debounce_seconds=10.0, max_delay_seconds=10.0)
        persistence.schedule_save({"n": 1})
        time.sleep(0.1)
        assert persistence.saves == 0
        assert not (Path(tmpdir) / "gameState.json").exists()
        persistence.flush()
        assert persistence.saves == 1
        persistence.close()


def test_quiet_period_write_happens_without_flush():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir, debounce_seconds=0.05)
        persistence.schedule_save({"n": 1})
        deadline = time.monotonic() + 3.0
        while persistence.saves == 0 and time.monotonic() < deadline:
            time.sleep(0.02)
        assert persistence.saves == 1
        persistence.close()


def test_sustained_burst_is_capped_by_max_delay():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir, debounce_seconds=0.3, max_delay_seconds=0.3)
        start = time.monotonic()
        i = 0
        while time.monotonic() - start < 1.5:
            persistence.schedule_save({"n": i})
            i += 1
            time.sleep(0.05)
        assert persistence.saves >= 1
        persistence.close()


def test_load_session_missing_or_corrupt():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir)
        assert persistence.load_session() is None

        (Path(tmpdir) / "gameState.json").write_text("{not json", encoding="utf-8")
        assert persistence.load_session() is None

        (Path(tmpdir) / "gameState.json").write_text("[]", encoding="utf-8")
        assert persistence.load_session() is None
        persistence.close()


def test_load_session_rejects_other_schema_version():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir)
        path = Path(tmpdir) / "gameState.json"
        path.write_text(
            json.dumps({"version": SCHEMA_VERSION + 1, "saved_at": "2030-01-01T00:00:00Z"}),
            encoding="utf-8",
        )
        assert persistence.load_session() is None
        path.write_text(json.dumps({"version": SCHEMA_VERSION}), encoding="utf-8")
        assert persistence.load_session() is None
        persistence.close()


def test_load_session_rejects_stale_document():
    with tempfile.TemporaryDirectory() as tmpdir:
        clock = FakeClock()
        persistence = _make_persistence(tmpdir, clock=clock, max_age_seconds=86400)
        persistence.schedule_save({"n": 1})
        persistence.flush()

        clock.now += 86400
        assert persistence.load_session() is not None
        clock.now += 1
        assert persistence.load_session() is None
        persistence.close()


def test_clear_session_drops_pending_write():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir)
        persistence.schedule_save({"n": 1})
        persistence.flush()

        slow = _make_persistence(tmpdir, debounce_seconds=10.0, max_delay_seconds=10.0)
        slow.schedule_save({"n": 2})
        slow.clear_session()
        slow.flush()

        path = Path(tmpdir) / "gameState.json"
        assert json.loads(path.read_text(encoding="utf-8")) == {}
        assert slow.load_session() is None
        assert slow.saves == 0
        persistence.close()
        slow.close()


def test_failed_write_is_logged(caplog):
    with tempfile.TemporaryDirectory() as tmpdir:
        blocker = Path(tmpdir) / "blocker"
        blocker.write_text("", encoding="utf-8")
        persistence = JsonFilePersistence(
            str(blocker / "gameState.json"),
            str(Path(tmpdir) / "stats.json"),
            debounce_seconds=0.01,
        )
        with caplog.at_level(logging.ERROR):
            persistence.schedule_save({"n": 1})
            persistence.flush()
        assert persistence.saves == 0
        assert any("Failed to save game state" in r.getMessage() for r in caplog.records)
        persistence.close()


class StalledFailingPersistence(JsonFilePersistence):
    """Writes block until released, then fail."""

    def __init__(self, *args, **kwargs):
        self.writing = threading.Event()
        self.release = threading.Event()
        super().__init__(*args, **kwargs)

    def _write_state(self, document):
        self.writing.set()
        self.release.wait(timeout=5)
        raise OSError("disk full")


def test_failed_write_during_clear_is_not_retried():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "gameState.json"
        path.write_text(json.dumps({"n": 0}), encoding="utf-8")
        persistence = StalledFailingPersistence(
            str(path),
            str(Path(tmpdir) / "stats.json"),
            debounce_seconds=0.0,
            max_delay_seconds=0.0,
        )
        persistence.schedule_save({"n": 1})
        assert persistence.writing.wait(timeout=2)

        clearer = threading.Thread(target=persistence.clear_session)
        clearer.start()
        deadline = time.monotonic() + 2
        while persistence._clears == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        persistence.release.set()
        clearer.join(timeout=2)

        assert not clearer.is_alive()
        assert persistence._pending is None
        assert json.loads(path.read_text(encoding="utf-8")) == {}
        persistence.close()


def test_record_game_end_updates_stats():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir)
        persistence.record_game_end(
            {"name": "Owl", "color": "#111111", "count": 40}, "Sunrise", "Birds"
        )
        persistence.record_game_end(
            {"name": "Hawk", "color": "#222222", "count": 25}, "Sunrise", "Planets"
        )
        stats = persistence.record_game_end(None, "Lagoon", "Planets")

        assert stats["games_played"] == 3
        assert stats["last_winner"]["name"] == "Hawk"
        assert stats["highest_score"]["name"] == "Owl"
        assert stats["highest_score"]["count"] == 40
        assert stats["palette_counts"] == {"Sunrise": 2, "Lagoon": 1}
        assert stats["most_played_palette"] == {"name": "Sunrise", "count": 2}
        assert stats["most_played_category"] == {"name": "Planets", "count": 2}
        assert persistence.load_stats() == stats
        persistence.close()


def test_load_stats_defaults_and_legacy_keys():
    with tempfile.TemporaryDirectory() as tmpdir:
        persistence = _make_persistence(tmpdir)
        assert persistence.load_stats() == default_stats()

        (Path(tmpdir) / "stats.json").write_text(
            json.dumps({"gamesPlayed": 12, "paletteCounts": {"Arcade": 3}, "junk": 1}),
            encoding="utf-8",
        )
        stats = persistence.load_stats()
        assert stats["games_played"] == 12
        assert stats["palette_counts"] == {"Arcade": 3}
        assert "junk" not in stats
        persistence.close()


def test_apply_game_end_without_winner():
    stats = apply_game_end(merge_stats(None), None, None, None, "2024-01-01T00:00:00+00:00")
    assert stats["games_played"] == 1
    assert stats["last_winner"]["name"] is None
    assert stats["palette_counts"] == {}
