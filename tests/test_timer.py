from datetime import datetime

import pytest

from groupbot.timer import (
    Timer,
    chinese_char_to_int,
    chinese_num_to_int,
    get_filled_cron_timer,
    get_filled_timer,
)


def test_next_wake_time_is_in_future():
    ts = get_filled_timer(["", "每", "周六", "16", "30", "", ""], 0, 0, True)
    assert ts.month() == -1
    assert ts.week() == 6
    now = datetime.now()
    assert ts.next_wake_time(now) > now


def test_fields_from_packed_word():
    t = Timer(emdwhm=0x800000 | (12 << 19) | (5 << 14) | (3 << 11) | (8 << 6) | 45)
    assert t.enabled()
    assert (t.month(), t.day(), t.week(), t.hour(), t.minute()) == (12, 5, 3, 8, 45)


def test_all_ones_mean_every():
    t = Timer(emdwhm=0x7FFFFF)
    assert not t.enabled()
    assert (t.month(), t.day(), t.week(), t.hour(), t.minute()) == (-1, -1, -1, -1, -1)


def test_filled_timer_fields():
    t = get_filled_timer(["", "12", "-1", "12", "0", "", "test"], 7, 9, False)
    assert t.enabled()
    assert (t.month(), t.day(), t.week(), t.hour(), t.minute()) == (12, 0, 1, 12, 0)
    assert t.alert == "test"
    assert (t.self_id, t.grp_id) == (7, 9)
    assert t.timer_info() == "[9]12月0日1周12:0"


def test_filled_timer_chinese_day_and_url():
    t = get_filled_timer(
        ["", "三", "二十三日", "八", "三十", "用http://example.com/a.png", "hi"], 1, 2, False
    )
    assert (t.month(), t.day(), t.hour(), t.minute()) == (3, 23, 8, 30)
    assert t.url == "http://example.com/a.png"
    assert t.enabled()


def test_filled_timer_illegal_url():
    t = get_filled_timer(["", "3", "5日", "8", "0", "用ftp://x", "hi"], 1, 2, False)
    assert t.url == "illegal"
    assert not t.enabled()


def test_match_date_only_stays_disabled():
    t = get_filled_timer(["", "3", "5日", "8", "0"], 1, 2, True)
    assert not t.enabled()
    assert t.grp_id == 2
    assert t.alert == ""


@pytest.mark.parametrize(
    "strs, alert",
    [
        (["", "13", "5日", "8", "0", "", "x"], "月份非法！"),
        (["", "三", "三十二日", "8", "0", "", "x"], "日期非法1！"),
        (["", "3", "32日", "8", "0", "", "x"], "日期非法2！"),
        (["", "3", "周八", "8", "0", "", "x"], "星期非法！"),
        (["", "3", "5日", "24", "0", "", "x"], "小时非法！"),
        (["", "3", "5日", "8", "60", "", "x"], "分钟非法！"),
    ],
)
def test_illegal_values(strs, alert):
    t = get_filled_timer(strs, 0, 0, False)
    assert t.alert == alert
    assert not t.enabled()


def test_sunday_is_zero():
    t = get_filled_timer(["", "每", "周日", "8", "0", "", "x"], 0, 0, False)
    assert t.week() == 0


@pytest.mark.parametrize(
    "text, value",
    [("十", 10), ("十五", 15), ("二五", 25), ("五", 5), ("每", -1), ("每二", -2), ("12", 12), ("1二", 0)],
)
def test_chinese_num_to_int(text, value):
    assert chinese_num_to_int(text) == value


def test_chinese_num_to_int_empty():
    with pytest.raises(ValueError):
        chinese_num_to_int("")


@pytest.mark.parametrize("c, value", [("天", 7), ("日", 7), ("零", 0), ("九", 9), ("十", 10), ("x", 0)])
def test_chinese_char_to_int(c, value):
    assert chinese_char_to_int(c) == value


def test_timer_id_stable_and_distinct():
    a = get_filled_timer(["", "3", "5日", "8", "0", "", "x"], 0, 1, False)
    b = get_filled_timer(["", "3", "5日", "8", "0"], 0, 1, True)
    c = get_filled_timer(["", "3", "5日", "8", "1", "", "x"], 0, 1, False)
    assert a.timer_id() == b.timer_id()
    assert a.timer_id() != c.timer_id()
    assert 0 <= a.timer_id() < 2**32


def test_cron_timer_id_ignores_alert():
    t = get_filled_cron_timer("0 8 * * *", "wake", "", 1, 5)
    assert t.timer_info() == "[5]0 8 * * *"
    assert t.timer_id() == Timer(cron="0 8 * * *", grp_id=5).timer_id()


def test_next_wake_daily():
    t = get_filled_timer(["", "每", "每周", "16", "30", "", "x"], 0, 0, False)
    assert t.next_wake_time(datetime(2023, 3, 15, 10, 0)) == datetime(2023, 3, 16, 16, 30)


def test_next_wake_weekly():
    t = get_filled_timer(["", "每", "周六", "16", "30", "", ""], 0, 0, True)
    assert t.next_wake_time(datetime(2023, 3, 15, 10, 0)) == datetime(2023, 3, 18, 16, 30)


def test_next_wake_fixed_date():
    t = get_filled_timer(["", "4", "1日", "9", "0", "", "x"], 0, 0, False)
    assert t.next_wake_time(datetime(2023, 3, 15, 10, 0)) == datetime(2023, 4, 1, 9, 0)


@pytest.mark.parametrize(
    "strs",
    [
        ["", "每", "每周", "每", "每", "", "x"],
        ["", "每", "每日", "8", "0", "", "x"],
        ["", "12", "31日", "23", "59", "", "x"],
        ["", "2", "周一", "0", "0", "", "x"],
        ["", "每", "5日", "每", "15", "", "x"],
        ["", "6", "每周", "12", "每", "", "x"],
    ],
)
@pytest.mark.parametrize(
    "now",
    [datetime(2023, 3, 15, 10, 0, 12), datetime(2023, 12, 31, 23, 59, 59), datetime(2024, 2, 29, 0, 0)],
)
def test_next_wake_always_after_now(strs, now):
    t = get_filled_timer(strs, 0, 0, False)
    assert t.next_wake_time(now) > now


def test_is_due():
    t = get_filled_timer(["", "3", "15日", "10", "0", "", "x"], 0, 0, False)
    assert t.is_due(datetime(2023, 3, 15, 10, 0))
    assert not t.is_due(datetime(2023, 3, 15, 10, 1))
    assert not t.is_due(datetime(2023, 4, 15, 10, 0))
    off = get_filled_timer(["", "3", "15日", "10", "0"], 0, 0, True)
    assert not off.is_due(datetime(2023, 3, 15, 10, 0))


def test_is_due_weekly():
    t = get_filled_timer(["", "每", "周三", "每", "0", "", "x"], 0, 0, False)
    assert t.is_due(datetime(2023, 3, 15, 7, 0))
    assert not t.is_due(datetime(2023, 3, 16, 7, 0))


def test_matches_hour_minute():
    t = get_filled_timer(["", "每", "每周", "每", "30", "", "x"], 0, 0, False)
    assert t.matches_hour_minute(datetime(2023, 1, 1, 5, 30))
    assert not t.matches_hour_minute(datetime(2023, 1, 1, 5, 31))


def test_message_segments():
    t = get_filled_cron_timer("0 8 * * *", "早", "", 1, 2)
    assert t.message_segments() == [
        {"type": "at", "data": {"qq": "all"}},
        {"type": "text", "data": {"text": "早"}},
    ]
    t.url = "http://example.com/p.png"
    assert t.message_segments()[-1] == {
        "type": "image",
        "data": {"file": "http://example.com/p.png", "cache": "0"},
    }