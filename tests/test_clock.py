from datetime import datetime

import pytest

from groupbot.clock import Clock, CronSchedule
from groupbot.timer import Timer, get_filled_cron_timer, get_filled_timer


@pytest.fixture
def clock(tmp_path):
    fired = []
    c = Clock(tmp_path / "timers.db", fired.append)
    yield c
    c.close()


def test_clock_lists_timer_loaded_from_db(tmp_path):
    path = tmp_path / "test.db"
    c = Clock(path, lambda t: None)
    c.add_timer_into_db(get_filled_timer(["", "12", "-1", "12", "0", "", "test"], 0, 0, False))
    assert c.list_timers(0) == []
    c.close()
    reopened = Clock(path, lambda t: None)
    try:
        assert reopened.list_timers(0) == ["12月1周12:0\n"]
    finally:
        reopened.close()


def test_register_cron_and_cancel(clock):
    ts = get_filled_cron_timer("0 8 * * *", "早上好", "", 1, 42)
    assert clock.register_timer(ts, True)
    assert ts.id == ts.timer_id()
    assert clock.get_timer(ts.id) is ts
    assert clock.list_timers(42) == ["0 8 * * *\n"]
    assert clock.list_timers(7) == []
    assert clock.cancel_timer(Timer(cron="0 8 * * *", grp_id=42).timer_id())
    assert clock.get_timer(ts.id) is None
    assert not clock.cancel_timer(ts.id)


def test_register_bad_cron(clock):
    ts = get_filled_cron_timer("not a cron", "x", "", 1, 42)
    assert not clock.register_timer(ts, True)
    assert ts.alert != "x"
    assert clock.list_timers(42) == []


def test_register_dated_timer_lists_every(clock):
    ts = get_filled_timer(["", "每", "每周", "8", "30", "", "hi"], 1, 42, False)
    assert clock.register_timer(ts, True)
    assert clock.list_timers(42) == ["每月每周8:30\n"]
    assert clock.cancel_timer(ts.id)
    assert clock.list_timers(42) == []


def test_reregister_replaces(clock):
    a = get_filled_cron_timer("0 8 * * *", "a", "", 1, 42)
    b = get_filled_cron_timer("0 8 * * *", "b", "", 1, 42)
    clock.register_timer(a, True)
    clock.register_timer(b, True)
    assert clock.list_timers(42) == ["0 8 * * *\n"]
    assert clock.get_timer(b.id).alert == "b"


def test_saved_timer_survives_reopen(tmp_path):
    path = tmp_path / "t.db"
    c = Clock(path, lambda t: None)
    ts = get_filled_cron_timer("15 9 * * 1", "周会", "http://example.com/x.png", 3, 99)
    c.register_timer(ts, True)
    c.close()
    with Clock(path, lambda t: None) as again:
        loaded = again.get_timer(ts.id)
        assert loaded is not None
        assert (loaded.cron, loaded.alert, loaded.url, loaded.grp_id) == (
            "15 9 * * 1",
            "周会",
            "http://example.com/x.png",
            99,
        )


def test_cancelled_timer_gone_after_reopen(tmp_path):
    path = tmp_path / "t.db"
    c = Clock(path, lambda t: None)
    ts = get_filled_cron_timer("0 0 * * *", "x", "", 0, 5)
    c.register_timer(ts, True)
    assert c.cancel_timer(ts.id)
    c.close()
    with Clock(path, lambda t: None) as again:
        assert again.list_timers(5) == []


def test_cron_next_after_daily():
    s = CronSchedule("30 8 * * *")
    assert s.next_after(datetime(2023, 3, 15, 9, 0)) == datetime(2023, 3, 16, 8, 30)
    assert s.next_after(datetime(2023, 3, 15, 8, 0)) == datetime(2023, 3, 15, 8, 30)


def test_cron_step():
    s = CronSchedule("*/15 * * * *")
    assert s.next_after(datetime(2023, 3, 15, 10, 7)) == datetime(2023, 3, 15, 10, 15)
    assert s.next_after(datetime(2023, 3, 15, 10, 15, 30)) == datetime(2023, 3, 15, 10, 30)


def test_cron_dom_or_dow():
    s = CronSchedule("0 0 1 * 1")
    assert s.next_after(datetime(2023, 3, 15, 12, 0)) == datetime(2023, 3, 20, 0, 0)
    assert s.matches(datetime(2023, 4, 1, 0, 0))


def test_cron_dom_and_star_dow():
    s = CronSchedule("0 0 1 * *")
    assert not s.matches(datetime(2023, 3, 20, 0, 0))
    assert s.next_after(datetime(2023, 3, 15)) == datetime(2023, 4, 1)


def test_cron_names_and_descriptor():
    s = CronSchedule("0 9 * * MON-FRI")
    assert s.matches(datetime(2023, 3, 17, 9, 0))
    assert not s.matches(datetime(2023, 3, 18, 9, 0))
    assert CronSchedule("@daily").next_after(datetime(2023, 3, 15, 1, 0)) == datetime(2023, 3, 16)


@pytest.mark.parametrize("spec", ["bad", "61 * * * *", "* * * *", "0 0 5-2 * *", "0 0 * * 7"])
def test_cron_invalid(spec):
    with pytest.raises(ValueError):
        CronSchedule(spec)


def test_cron_never_fires():
    with pytest.raises(ValueError):
        CronSchedule("0 0 30 2 *").next_after(datetime(2023, 1, 1))