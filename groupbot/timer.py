"""Group reminder timers: a packed schedule word plus alert text and image."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

logger = logging.getLogger(__name__)

_EN_MASK = 0x800000
_MONTH_MASK = 0x780000
_DAY_MASK = 0x07C000
_WEEK_MASK = 0x003800
_HOUR_MASK = 0x0007C0
_MINUTE_MASK = 0x00003F

_CHINESE_DIGITS = "零一二三四五六七八九十"


def _go_weekday(moment: datetime) -> int:
    """Weekday with Sunday as 0."""
    return (moment.weekday() + 1) % 7


def _normalized(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int,
    microsecond: int,
    tz: tzinfo | None,
) -> datetime:
    """Build a datetime, letting out-of-range fields roll over into the next unit."""
    y, m0 = divmod(year * 12 + month - 1, 12)
    return datetime(y, m0 + 1, 1, tzinfo=tz) + timedelta(
        days=day - 1,
        hours=hour,
        minutes=minute,
        seconds=second,
        microseconds=microsecond,
    )


def _add_date(moment: datetime, years: int, months: int, days: int) -> datetime:
    return _normalized(
        moment.year + years,
        moment.month + months,
        moment.day + days,
        moment.hour,
        moment.minute,
        moment.second,
        moment.microsecond,
        moment.tzinfo,
    )


def _first_week(moment: datetime, week: int) -> datetime:
    d = _add_date(moment, 0, 0, 1 - moment.day)
    while _go_weekday(d) != week:
        d = _add_date(d, 0, 0, 1)
    return d


@dataclass
class Timer:
    """A reminder. Date fields live in a packed word; -1 means "every"."""

    id: int = 0
    emdwhm: int = 0
    self_id: int = 0
    grp_id: int = 0
    alert: str = ""
    cron: str = ""
    url: str = ""

    def enabled(self) -> bool:
        return self.emdwhm & _EN_MASK != 0

    def month(self) -> int:
        mon = (self.emdwhm & _MONTH_MASK) >> 19
        return -1 if mon == 0b1111 else mon

    def day(self) -> int:
        d = (self.emdwhm & _DAY_MASK) >> 14
        return -1 if d == 0b11111 else d

    def week(self) -> int:
        w = (self.emdwhm & _WEEK_MASK) >> 11
        return -1 if w == 0b111 else w

    def hour(self) -> int:
        h = (self.emdwhm & _HOUR_MASK) >> 6
        return -1 if h == 0b11111 else h

    def minute(self) -> int:
        mn = self.emdwhm & _MINUTE_MASK
        return -1 if mn == 0b111111 else mn

    def _set_enabled(self, en: bool) -> None:
        if en:
            self.emdwhm |= _EN_MASK
        else:
            self.emdwhm &= 0x7FFFFF

    def _set_month(self, mon: int) -> None:
        self.emdwhm = ((mon << 19) & _MONTH_MASK) | (self.emdwhm & 0x87FFFF)

    def _set_day(self, d: int) -> None:
        self.emdwhm = ((d << 14) & _DAY_MASK) | (self.emdwhm & 0xF83FFF)

    def _set_week(self, w: int) -> None:
        self.emdwhm = ((w << 11) & _WEEK_MASK) | (self.emdwhm & 0xFFC7FF)

    def _set_hour(self, h: int) -> None:
        self.emdwhm = ((h << 6) & _HOUR_MASK) | (self.emdwhm & 0xFFF83F)

    def _set_minute(self, mn: int) -> None:
        self.emdwhm = (mn & _MINUTE_MASK) | (self.emdwhm & 0xFFFFC0)

    def timer_info(self) -> str:
        """Canonical description used to derive the timer id."""
        if self.cron:
            return f"[{self.grp_id}]{self.cron}"
        return (
            f"[{self.grp_id}]{self.month()}月{self.day()}日{self.week()}周"
            f"{self.hour()}:{self.minute()}"
        )

    def timer_id(self) -> int:
        digest = hashlib.md5(self.timer_info().encode("utf-8")).digest()
        return int.from_bytes(digest[:4], "little")

    def next_wake_time(self, now: datetime) -> datetime:
        """The moment after ``now`` at which the timer should next check itself."""
        date = now
        m, d, h, mn, w = self.month(), self.day(), self.hour(), self.minute(), self.week()
        unit = timedelta(0)
        if mn >= 0:
            if h < 0:
                unit = timedelta(hours=1)
            elif d < 0 or w < 0:
                unit = timedelta(days=1)
            elif d == 0:
                delta = timedelta(days=w - _go_weekday(date))
                if delta < timedelta(0):
                    delta = timedelta(days=7)
                unit += delta
        else:
            unit = timedelta(minutes=1)

        stable = 0
        if mn < 0:
            mn = date.minute
        if h < 0:
            h = date.hour
        else:
            stable |= 0x8
        if d < 0:
            d = date.day
        elif d > 0:
            stable |= 0x4
        else:
            d = date.day
            if w >= 0:
                stable |= 0x2
        if m < 0:
            m = date.month
        else:
            stable |= 0x1

        if stable == 0b0101:
            if self.day() != now.day or self.month() != now.month:
                h = 0
        elif stable == 0b1001:
            if self.month() != now.month:
                d = 0
        elif stable == 0b0001:
            if self.month() != now.month:
                d = 0
                h = 0

        logger.debug("timer stable=%s m=%s d=%s h=%s mn=%s w=%s", stable, m, d, h, mn, w)
        date = _normalized(date.year, m, d, h, mn, date.second, date.microsecond, date.tzinfo)
        if unit > timedelta(0):
            date += unit

        if date <= now:
            if self.month() < 0:
                if self.day() > 0 or (self.day() == 0 and self.week() >= 0):
                    date = _add_date(date, 0, 1, 0)
                elif self.day() < 0 or self.week() < 0:
                    if self.hour() > 0:
                        date = _add_date(date, 0, 0, 1)
                    elif self.minute() > 0:
                        date += timedelta(hours=1)
            else:
                date = _add_date(date, 1, 0, 0)

        if stable & 0x8 and date.hour != h:
            if not stable & 0x4:
                date = _add_date(date, 0, 0, 1) - timedelta(hours=1)
            elif not stable & 0x2:
                date = _add_date(date, 0, 0, 7) - timedelta(hours=1)
            else:
                date = _add_date(date, 1, 0, 0) - timedelta(hours=1)

        if stable & 0x4 and date.day != d:
            date = _add_date(date, 1, 0, -1)

        if stable & 0x2 and _go_weekday(date) != w:
            date = _first_week(_add_date(date, 1, 0, 0), w)

        if date <= now:
            date = now + timedelta(minutes=1)
        return date

    def matches_hour_minute(self, now: datetime) -> bool:
        """Whether the hour and minute fields fit ``now``."""
        hour_ok = self.hour() < 0 or self.hour() == now.hour
        minute_ok = self.minute() < 0 or self.minute() == now.minute
        return hour_ok and minute_ok

    def is_due(self, now: datetime) -> bool:
        """Whether an enabled date timer should fire at ``now``."""
        if not self.enabled():
            return False
        if self.month() >= 0 and self.month() != now.month:
            return False
        if self.day() < 0 or self.day() == now.day:
            return self.matches_hour_minute(now)
        if self.day() == 0 and (self.week() < 0 or self.week() == _go_weekday(now)):
            return self.matches_hour_minute(now)
        return False

    def message_segments(self) -> list[dict]:
        """The message sent when the timer fires: @all, the alert and an optional image."""
        segments: list[dict] = [
            {"type": "at", "data": {"qq": "all"}},
            {"type": "text", "data": {"text": self.alert}},
        ]
        if self.url:
            segments.append({"type": "image", "data": {"file": self.url, "cache": "0"}})
        return segments


def get_filled_cron_timer(croncmd: str, alert: str, img: str, botqq: int, gid: int) -> Timer:
    """A timer driven by a cron expression."""
    return Timer(self_id=botqq, grp_id=gid, alert=alert, cron=croncmd, url=img)


def get_filled_timer(
    date_strs: list[str], botqq: int, grp: int, match_date_only: bool
) -> Timer:
    """Build a timer from the regex groups of a reminder command.

    On an illegal value the returned timer is disabled and its ``alert`` says why.
    """
    month_str, day_week, hour_str, minute_str = date_strs[1:5]
    t = Timer()

    mon = chinese_num_to_int(month_str)
    if (mon != -1 and mon <= 0) or mon > 12:
        t.alert = "月份非法！"
        return t
    t._set_month(mon)

    if len(day_week) == 4:
        d = chinese_num_to_int(day_week[0] + day_week[2])
        if (d != -1 and d <= 0) or d > 31:
            t.alert = "日期非法1！"
            return t
        t._set_day(d)
    elif day_week[-1] == "日":
        d = chinese_num_to_int(day_week[:-1])
        if (d != -1 and d <= 0) or d > 31:
            t.alert = "日期非法2！"
            return t
        t._set_day(d)
    elif day_week[0] == "每":
        t._set_week(-1)
    else:
        w = chinese_num_to_int(day_week[1:])
        if w == 7:
            w = 0
        if w < 0 or w > 6:
            t.alert = "星期非法！"
            return t
        t._set_week(w)

    if len(hour_str) == 3:
        hour_str = hour_str[0] + hour_str[2]
    h = chinese_num_to_int(hour_str)
    if h < -1 or h > 23:
        t.alert = "小时非法！"
        return t
    t._set_hour(h)

    if len(minute_str) == 3:
        minute_str = minute_str[0] + minute_str[2]
    mn = chinese_num_to_int(minute_str)
    if mn < -1 or mn > 59:
        t.alert = "分钟非法！"
        return t
    t._set_minute(mn)

    if not match_date_only:
        url_str = date_strs[5]
        if url_str:
            # drop the leading "用" (three bytes in UTF-8)
            t.url = url_str.encode("utf-8")[3:].decode("utf-8", "replace")
            logger.debug("timer url %s", t.url)
            if not t.url.startswith("http"):
                t.url = "illegal"
                logger.debug("timer url illegal")
                return t
        t.alert = date_strs[6]
        t._set_enabled(True)

    t.self_id = botqq
    t.grp_id = grp
    return t


def chinese_num_to_int(text: str) -> int:
    """Convert a one- or two-character Chinese or Arabic number (-10..99).

    "每" alone means -1, "每二" means -2 and so on.
    """
    if not text:
        raise ValueError("empty number")
    if text[0].isdecimal():
        return int(text) if re.fullmatch(r"[0-9]+", text) else 0
    if text[0] == "每":
        return -chinese_char_to_int(text[1]) if len(text) == 2 else -1
    if len(text) == 1:
        return chinese_char_to_int(text[0])
    ten = chinese_char_to_int(text[0])
    if ten != 10:
        ten *= 10
    ge = chinese_char_to_int(text[1])
    if ge == 10:
        ge = 0
    return ten + ge


def chinese_char_to_int(c: str) -> int:
    """Map one Chinese numeral to 0..10; 日 and 天 (Sunday) map to 7, anything else to 0."""
    if c in ("日", "天"):
        return 7
    index = _CHINESE_DIGITS.find(c)
    return index if index >= 0 else 0