from lifewall.engine.scoreboard import Scoreboard


def _payload(count: int):
    return {
        "teams": [{"name": "Owl", "color": "#111111", "count": count}],
        "event": "COMETS!",
    }


def test_default_board():
    board = Scoreboard().snapshot()
    assert len(board["teams"]) == 4
    assert board["event"] == "NO EVENT"
    assert board["last_updated"] is None


def test_offer_is_rate_limited():
    board = Scoreboard(min_interval=120)
    assert board.offer(_payload(1), now=0.0) is True
    assert board.offer(_payload(2), now=60.0) is False
    assert board.snapshot()["teams"][0]["count"] == 1
    assert board.offer(_payload(3), now=120.0) is True
    assert board.snapshot()["teams"][0]["count"] == 3


def test_forced_offer_bypasses_limit():
    board = Scoreboard(min_interval=120)
    board.offer(_payload(1), now=0.0)
    assert board.offer(_payload(9), now=1.0, force=True) is True
    assert board.snapshot()["teams"][0]["count"] == 9


def test_update_is_unconditional_and_copied():
    board = Scoreboard()
    payload = _payload(5)
    board.update(payload)
    board.update({"teams": [], "event": None})
    assert board.snapshot()["event"] == "NO EVENT"
    payload["teams"][0]["count"] = 99
    board.update(payload)
    snap = board.snapshot()
    snap["teams"][0]["count"] = 0
    assert board.snapshot()["teams"][0]["count"] == 99
    assert board.snapshot()["last_updated"] is not None
