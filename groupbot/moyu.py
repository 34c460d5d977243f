"""Slacking-off reminder: days left until the weekend and the public holidays."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

GREETING = (
    "上午好，摸鱼人！\n工作再累，一定不要忘记摸鱼哦！有事没事起身去茶水间，去厕所，"
    "去廊道走走别老在工位上坐着，钱是老板的,但命是自己的。\n"
)
CLOSING = "上班是帮老板赚钱，摸鱼是赚老板的钱！最后，祝愿天下所有摸鱼人，都能愉快的渡过每一天…"
HOLIDAY_NAMES = ("元旦", "春节", "清明节", "劳动节", "端午节", "中秋节", "国庆节")

_RECORD = re.compile(r"\s*(-?\d+)_(-?\d+)_(-?\d+)_(-?\d+)")


def encode_record(dur: int, year: int, month: int, day: int) -> str:
    """The stored form of a holiday: "dur_year_month_day"."""
    return f"{dur}_{year}_{month}_{day}"


@dataclass
class Holiday:
    """A holiday starting at ``date`` and lasting ``dur``."""

    name: str
    date: datetime
    dur: timedelta

    @classmethod
    def from_record(cls, name: str, record: str) -> Holiday:
        """Parse a "dur_year_month_day" record."""
        match = _RECORD.match(record)
        if match is None:
            raise ValueError(f"malformed holiday record: {record!r}")
        dur, year, month, day = (int(g) for g in match.groups())
        return cls(name, datetime(year, month, day), timedelta(days=dur))

    def describe(self, now: datetime) -> str:
        """How far away the holiday is, seen from ``now``."""
        d = self.date - now
        if d >= timedelta(0):
            days = d.total_seconds() / 86400.0
            return f"距离{self.name}还有: {days:.2f}天！"
        if d + self.dur >= timedelta(0):
            return f"好好享受 {self.name} 假期吧!"
        return f"今年 {self.name} 假期已过"


def weekend(now: datetime) -> str:
    """Days left until the weekend, or a cheer when it is already here."""
    weekday = (now.weekday() + 1) % 7  # Sunday is 0
    if weekday in (0, 6):
        return "好好享受周末吧！"
    return f"距离周末还有:{5 - weekday}天！"


def build_reminder(holidays: Iterable[Holiday], now: datetime) -> str:
    """The full reminder text for ``now``."""
    parts = [now.strftime("%Y-%m-%d"), GREETING, weekend(now)]
    for holiday in holidays:
        parts.append("\n")
        parts.append(holiday.describe(now))
    parts.append("\n")
    parts.append(CLOSING)
    return "".join(parts)