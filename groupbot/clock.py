"""Runs reminder timers in background threads and keeps them in SQLite."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import date, datetime, timedelta
from os import PathLike
from typing import Callable

from groupbot.timer import Timer

logger = logging.getLogger(__name__)

_MONTH_NAMES = {
    name: i + 1
    for i, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
    )
}
_DAY_NAMES = {name: i for i, name in enumerate(["sun", "mon", "tue", "wed", "thu", "fri", "sat"])}

_DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_FIELDS = (
    ("minute", 0, 59, None),
    ("hour", 0, 23, None),
    ("day of month", 1, 31, None),
    ("month", 1, 12, _MONTH_NAMES),
    ("day of week", 0, 6, _DAY_NAMES),
)


def _parse_value(text: str, names: dict[str, int] | None, field: str) -> int:
    if names and text.lower() in names:
        return names[text.lower()]
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"failed to parse {field} value {text!r}") from None


def _parse_field(expr: str, lo: int, hi: int, names, field: str) -> tuple[frozenset[int], bool]:
    values: set[int] = set()
    star = False
    for part in expr.split(","):
        range_and_step = part.split("/")
        if len(range_and_step) > 2:
            raise ValueError(f"too many slashes in {field}: {part!r}")
        low_high = range_and_step[0].split("-")
        if len(low_high) > 2:
            raise ValueError(f"too many hyphens in {field}: {part!r}")
        part_star = False
        if low_high[0] in ("*", "?"):
            if len(low_high) != 1:
                raise ValueError(f"bad range in {field}: {part!r}")
            start, end, part_star = lo, hi, True
        else:
            start = _parse_value(low_high[0], names, field)
            end = _parse_value(low_high[1], names, field) if len(low_high) == 2 else start
        step = 1
        if len(range_and_step) == 2:
            step = _parse_value(range_and_step[1], None, field)
            if len(low_high) == 1:
                end = hi
            if step > 1:
                part_star = False
        if start < lo or end > hi:
            raise ValueError(f"{field} out of range ({lo}-{hi}): {part!r}")
        if start > end:
            raise ValueError(f"{field} start beyond end: {part!r}")
        if step < 1:
            raise ValueError(f"{field} step must be positive: {part!r}")
        values.update(range(start, end + 1, step))
        star = star or part_star
    return frozenset(values), star


class CronSchedule:
    """A standard five-field cron expression (minute hour dom month dow)."""

    def __init__(self, spec: str) -> None:
        self.spec = spec
        text = spec.strip()
        text = _DESCRIPTORS.get(text.lower(), text)
        fields = text.split()
        if len(fields) != 5:
            raise ValueError(f"expected 5 fields, found {len(fields)}: {spec!r}")
        parsed = [
            _parse_field(expr, lo, hi, names, name)
            for expr, (name, lo, hi, names) in zip(fields, _FIELDS)
        ]
        (self._minutes, _), (self._hours, _), (self._dom, self._dom_star), (self._months, _), (
            self._dow,
            self._dow_star,
        ) = parsed

    def _day_matches(self, day: date) -> bool:
        if day.month not in self._months:
            return False
        dom_match = day.day in self._dom
        dow_match = (day.weekday() + 1) % 7 in self._dow
        if self._dom_star or self._dow_star:
            return dom_match and dow_match
        return dom_match or dow_match

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self._minutes
            and moment.hour in self._hours
            and self._day_matches(moment.date())
        )

    def next_after(self, moment: datetime) -> datetime:
        """The first whole minute strictly after ``moment`` that matches."""
        start = moment.replace(second=0, microsecond=0) + timedelta(minutes=1)
        hours = sorted(self._hours)
        minutes = sorted(self._minutes)
        for offset in range(366 * 5 + 1):
            day = start.date() + timedelta(days=offset)
            if not self._day_matches(day):
                continue
            for h in hours:
                if offset == 0 and h < start.hour:
                    continue
                for mi in minutes:
                    if offset == 0 and h == start.hour and mi < start.minute:
                        continue
                    return datetime(day.year, day.month, day.day, h, mi, tzinfo=moment.tzinfo)
        raise ValueError(f"schedule never fires: {self.spec!r}")


class Clock:
    """Keeps registered timers, fires them through ``sender`` and stores them in SQLite."""

    def __init__(self, db_path: str | PathLike, sender: Callable[[Timer], None]) -> None:
        self._sender = sender
        self._db = sqlite3.connect(str(db_path), check_same_thread=False)
        self._db_lock = threading.Lock()
        self._lock = threading.RLock()
        self._timers: dict[int, Timer] = {}
        self._jobs: dict[int, threading.Event] = {}
        with self._db_lock:
            self._db.execute(
                "CREATE TABLE IF NOT EXISTS timer ("
                "id INTEGER PRIMARY KEY, emdwhm INTEGER, sid INTEGER, gid INTEGER, "
                "alert TEXT, cron TEXT, url TEXT)"
            )
            self._db.commit()
        self._load_timers()

    def __enter__(self) -> Clock:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _load_timers(self) -> None:
        with self._db_lock:
            rows = self._db.execute(
                "SELECT id, emdwhm, sid, gid, alert, cron, url FROM timer"
            ).fetchall()
        for row in rows:
            self.register_timer(
                Timer(
                    id=row[0],
                    emdwhm=row[1] or 0,
                    self_id=row[2] or 0,
                    grp_id=row[3] or 0,
                    alert=row[4] or "",
                    cron=row[5] or "",
                    url=row[6] or "",
                ),
                False,
            )

    def _fire(self, ts: Timer) -> None:
        try:
            self._sender(ts)
        except Exception:
            logger.exception("sending timer %08x failed", ts.id)

    def _run_cron(self, ts: Timer, schedule: CronSchedule, stop: threading.Event) -> None:
        while not stop.is_set():
            now = datetime.now()
            try:
                nxt = schedule.next_after(now)
            except ValueError:
                logger.warning("cron %r never fires", ts.cron)
                return
            if stop.wait((nxt - now).total_seconds()):
                return
            self._fire(ts)

    def _run_dated(self, ts: Timer, stop: threading.Event) -> None:
        while ts.enabled() and not stop.is_set():
            now = datetime.now()
            wake = ts.next_wake_time(now)
            delay = max(0.0, (wake - now).total_seconds())
            logger.info("timer %08x sleeps %ds", ts.id, int(delay))
            if stop.wait(delay):
                return
            if ts.is_due(datetime.now()):
                self._fire(ts)

    def _start(self, key: int, target, *args) -> None:
        stop = threading.Event()
        with self._lock:
            self._jobs[key] = stop
        threading.Thread(target=target, args=(*args, stop), daemon=True).start()

    def register_timer(self, ts: Timer, save: bool) -> bool:
        """Schedule ``ts``; with ``save`` its id is derived and it is stored.

        A cron timer with a bad expression is rejected: its ``alert`` holds the reason.
        """
        if save:
            ts.id = ts.timer_id()
        key = ts.id
        with self._lock:
            old = self._jobs.pop(key, None)
        if old is not None:
            old.set()
        logger.info("registering timer %s", key)
        if ts.cron:
            try:
                schedule = CronSchedule(ts.cron)
            except ValueError as err:
                ts.alert = str(err)
                return False
            try:
                if save:
                    self.add_timer_into_db(ts)
                self.add_timer_into_map(ts)
            except sqlite3.Error:
                logger.exception("storing timer %s failed", key)
                return False
            self._start(key, self._run_cron, ts, schedule)
            return True
        if save:
            try:
                self.add_timer_into_db(ts)
            except sqlite3.Error:
                logger.exception("storing timer %s failed", key)
        self.add_timer_into_map(ts)
        if ts.enabled():
            self._start(key, self._run_dated, ts)
        return True

    def cancel_timer(self, key: int) -> bool:
        """Stop and forget the timer; False if unknown or it could not be deleted."""
        with self._lock:
            t = self._timers.pop(key, None)
            stop = self._jobs.pop(key, None)
        if t is None:
            return False
        if stop is not None:
            stop.set()
        try:
            with self._db_lock:
                self._db.execute("DELETE FROM timer WHERE id = ?", (key,))
                self._db.commit()
        except sqlite3.Error:
            logger.exception("deleting timer %s failed", key)
            return False
        return True

    def list_timers(self, grp_id: int) -> list[str]:
        """Human-readable schedules of the group's timers, one per line."""
        with self._lock:
            timers = list(self._timers.values())
        lines = []
        for t in timers:
            if t.grp_id != grp_id:
                continue
            info = t.timer_info()
            msg = info[info.index("]") + 1:] + "\n"
            msg = msg.replace("-1", "每")
            msg = msg.replace("月0日0周", "月周天")
            msg = msg.replace("月0日", "月")
            msg = msg.replace("日0周", "日")
            lines.append(msg)
        return lines

    def get_timer(self, key: int) -> Timer | None:
        with self._lock:
            return self._timers.get(key)

    def add_timer_into_db(self, t: Timer) -> None:
        with self._db_lock:
            self._db.execute(
                "INSERT OR REPLACE INTO timer (id, emdwhm, sid, gid, alert, cron, url) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (t.id, t.emdwhm, t.self_id, t.grp_id, t.alert, t.cron, t.url),
            )
            self._db.commit()

    def add_timer_into_map(self, t: Timer) -> None:
        with self._lock:
            self._timers[t.id] = t

    def close(self) -> None:
        """Stop every running timer and close the database."""
        with self._lock:
            stops = list(self._jobs.values())
            self._jobs.clear()
        for stop in stops:
            stop.set()
        with self._db_lock:
            self._db.close()