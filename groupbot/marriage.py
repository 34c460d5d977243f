"""Daily group marriages: rosters, favorability, skill cool-downs and eligibility checks."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from os import PathLike
from typing import Callable

DEFAULT_CD_HOURS = 12.0
MODE_FREE_LOVE = "自由恋爱"
MODE_NTR = "牛头人"

_DATE_FORMAT = "%Y/%m/%d"
_TIME_FORMAT = "%H:%M:%S"
_BASE_TABLES = {"updateinfo", "favorability", "cdsheet"}

# cool-down skill kinds
SKILL_PROPOSE = 1
SKILL_MISTRESS = 2
SKILL_MATCHMAKING = 3
SKILL_DIVORCE = 4
SKILL_GIFT = 5


class Status(Enum):
    """A member's place in today's roster."""

    SINGLE = "单"
    TOP = "攻"
    BOTTOM = "受"


@dataclass
class Couple:
    """One marriage certificate of the day."""

    user: int
    target: int
    username: str
    targetname: str
    updatetime: str

    @property
    def is_noble_single(self) -> bool:
        """Registered with nobody: the "single by choice" record."""
        return self.target == 0 or self.user == 0


def _roster_table(gid: int) -> str:
    return f'"group{int(gid)}"'


def _pair_keys(uid: int, target: int) -> tuple[str, str]:
    return f"{uid}+{target}+{uid}", f"{target}+{uid}+{target}"


class Registry:
    """The marriage office of every group, stored in one SQLite file.

    ``today`` is a callable giving the current local time; it defaults to ``datetime.now``.
    """

    def __init__(self, path: str | PathLike, today: Callable[[], datetime] | None = None) -> None:
        self._now = today if today is not None else datetime.now
        self._db = sqlite3.connect(str(path), check_same_thread=False)
        self._lock = threading.RLock()
        with self._lock:
            self._create_base_tables()

    def __enter__(self) -> Registry:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _create_base_tables(self) -> None:
        self._db.execute(
            "CREATE TABLE IF NOT EXISTS updateinfo ("
            "gid INTEGER PRIMARY KEY, updatetime TEXT, canmatch INTEGER, "
            "canntr INTEGER, cdtime REAL)"
        )
        self._db.execute(
            "CREATE TABLE IF NOT EXISTS favorability (userinfo TEXT PRIMARY KEY, favor INTEGER)"
        )
        self._db.execute(
            "CREATE TABLE IF NOT EXISTS cdsheet ("
            "time INTEGER, groupid INTEGER, userid INTEGER, modeid INTEGER, "
            "PRIMARY KEY (groupid, userid, modeid))"
        )
        self._db.commit()

    def _ensure_roster(self, gid: int) -> None:
        self._db.execute(
            f"CREATE TABLE IF NOT EXISTS {_roster_table(gid)} ("
            "user INTEGER PRIMARY KEY, target INTEGER, username TEXT, "
            "targetname TEXT, updatetime TEXT)"
        )

    def _info(self, gid: int) -> tuple | None:
        return self._db.execute(
            "SELECT updatetime, canmatch, canntr, cdtime FROM updateinfo WHERE gid = ?",
            (gid,),
        ).fetchone()

    def _put_info(
        self, gid: int, updatetime: str, canmatch: int, canntr: int, cdtime: float
    ) -> None:
        self._db.execute(
            "INSERT OR REPLACE INTO updateinfo (gid, updatetime, canmatch, canntr, cdtime) "
            "VALUES (?, ?, ?, ?, ?)",
            (gid, updatetime, canmatch, canntr, cdtime),
        )

    def _tables(self) -> list[str]:
        rows = self._db.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        return [r[0] for r in rows]

    def open_day(self, gid: int) -> bool:
        """Start a new day for the group if needed; True when the roster is fresh."""
        today = self._now().strftime(_DATE_FORMAT)
        with self._lock:
            info = self._info(gid)
            if info is None:
                self._put_info(gid, today, 1, 1, DEFAULT_CD_HOURS)
                self._db.commit()
                return True
            if info[0] == today:
                return False
            self._db.execute(f"DROP TABLE IF EXISTS {_roster_table(gid)}")
            self._ensure_roster(gid)
            self._put_info(gid, today, info[1], info[2], info[3])
            self._db.commit()
            return True

    def modes(self, gid: int) -> tuple[bool, bool]:
        """Whether free love and stealing partners are allowed in the group."""
        with self._lock:
            info = self._info(gid)
            if info is None:
                self._put_info(gid, "", 1, 1, DEFAULT_CD_HOURS)
                self._db.commit()
                return True, True
            return bool(info[1]), bool(info[2])

    def set_mode(self, gid: int, mode: str, status: bool) -> None:
        """Allow or forbid ``"自由恋爱"`` or ``"牛头人"``."""
        if mode not in (MODE_FREE_LOVE, MODE_NTR):
            raise ValueError("错误:修改内容不匹配！")
        value = 1 if status else 0
        with self._lock:
            info = self._info(gid)
            if info is None:
                updatetime, canmatch, canntr, cdtime = "", 1, 1, DEFAULT_CD_HOURS
            else:
                updatetime, canmatch, canntr, cdtime = info
            if mode == MODE_FREE_LOVE:
                canmatch = value
            else:
                canntr = value
            self._put_info(gid, updatetime, canmatch, canntr, cdtime)
            self._db.commit()

    def reset_rosters(self, gid: int | str) -> None:
        """Clear one group's roster, or with gid 0 every table but favorability."""
        key = str(gid)
        today = self._now().strftime(_DATE_FORMAT)
        with self._lock:
            existing = self._tables()
            if key == "0":
                tables = [t for t in existing if t != "favorability"]
            else:
                name = "group" + key
                if name not in existing:
                    raise LookupError(f"no roster for group {key}")
                tables = [name]
            groups = []
            for name in tables:
                self._db.execute(f'DROP TABLE IF EXISTS "{name}"')
                if name.startswith("group"):
                    try:
                        groups.append(int(name[len("group"):]))
                    except ValueError:
                        pass
            self._create_base_tables()
            for g in groups:
                self._put_info(g, today, 1, 1, DEFAULT_CD_HOURS)
            self._db.commit()

    def lookup(self, gid: int, uid: int) -> tuple[Couple | None, Status]:
        """The member's certificate today and their role in it."""
        with self._lock:
            self._ensure_roster(gid)
            table = _roster_table(gid)
            columns = "user, target, username, targetname, updatetime"
            row = self._db.execute(
                f"SELECT {columns} FROM {table} WHERE user = ?", (uid,)
            ).fetchone()
            if row is not None:
                return Couple(*row), Status.TOP
            row = self._db.execute(
                f"SELECT {columns} FROM {table} WHERE target = ?", (uid,)
            ).fetchone()
            if row is not None:
                return Couple(*row), Status.BOTTOM
            return None, Status.SINGLE

    def register(self, gid: int, uid: int, target: int, username: str, targetname: str) -> None:
        """Record that ``uid`` married ``target`` today; target 0 means single by choice."""
        stamp = self._now().strftime(_TIME_FORMAT)
        with self._lock:
            self._ensure_roster(gid)
            self._db.execute(
                f"INSERT OR REPLACE INTO {_roster_table(gid)} "
                "(user, target, username, targetname, updatetime) VALUES (?, ?, ?, ?, ?)",
                (uid, target, username, targetname, stamp),
            )
            self._db.commit()

    def divorce_wife(self, gid: int, wife: int) -> None:
        with self._lock:
            self._ensure_roster(gid)
            self._db.execute(f"DELETE FROM {_roster_table(gid)} WHERE target = ?", (wife,))
            self._db.commit()

    def divorce_husband(self, gid: int, husband: int) -> None:
        with self._lock:
            self._ensure_roster(gid)
            self._db.execute(f"DELETE FROM {_roster_table(gid)} WHERE user = ?", (husband,))
            self._db.commit()

    def roster(self, gid: int) -> list[tuple[str, str, str, str]]:
        """Today's couples as (username, user id, targetname, target id)."""
        with self._lock:
            self._ensure_roster(gid)
            rows = self._db.execute(
                f"SELECT user, target, username, targetname FROM {_roster_table(gid)} "
                "GROUP BY user"
            ).fetchall()
        return [
            (username, str(user), targetname, str(target))
            for user, target, username, targetname in rows
            if target != 0
        ]

    def _find_favor(self, uid: int, target: int) -> tuple[str, int] | None:
        keys = _pair_keys(uid, target)
        return self._db.execute(
            "SELECT userinfo, favor FROM favorability WHERE userinfo IN (?, ?)", keys
        ).fetchone()

    def get_favorability(self, uid: int, target: int) -> int:
        """The pair's favorability; a new pair starts at 0."""
        with self._lock:
            row = self._find_favor(uid, target)
            if row is None:
                self._db.execute(
                    "INSERT INTO favorability (userinfo, favor) VALUES (?, 0)",
                    (_pair_keys(uid, target)[0],),
                )
                self._db.commit()
                return 0
            return row[1]

    def set_favorability(self, uid: int, target: int, score: int) -> int:
        """Add ``score`` to the pair's favorability, kept within 0..100; returns the new value.

        A new pair simply starts at ``score``.
        """
        with self._lock:
            row = self._find_favor(uid, target)
            if row is None:
                key, favor = _pair_keys(uid, target)[0], score
            else:
                key, favor = row[0], min(100, max(0, row[1] + score))
            self._db.execute(
                "INSERT OR REPLACE INTO favorability (userinfo, favor) VALUES (?, ?)",
                (key, favor),
            )
            self._db.commit()
            return favor

    def get_cd_time(self, gid: int) -> float:
        """Skill cool-down of the group in hours."""
        with self._lock:
            info = self._info(gid)
            if info is None:
                self._put_info(gid, "", 1, 1, DEFAULT_CD_HOURS)
                self._db.commit()
                return DEFAULT_CD_HOURS
            return info[3]

    def set_cd_time(self, gid: int, cd_time: float) -> None:
        with self._lock:
            info = self._info(gid)
            if info is None:
                self._put_info(gid, "", 1, 1, cd_time)
            else:
                self._put_info(gid, info[0], info[1], info[2], cd_time)
            self._db.commit()

    def write_cd_time(self, gid: int, uid: int, mode: int) -> None:
        """Note that ``uid`` used skill ``mode`` now."""
        stamp = int(self._now().timestamp())
        with self._lock:
            self._db.execute(
                "INSERT OR REPLACE INTO cdsheet (time, groupid, userid, modeid) "
                "VALUES (?, ?, ?, ?)",
                (stamp, gid, uid, mode),
            )
            self._db.commit()

    def compare_cd_time(self, gid: int, uid: int, mode: int, cd_time: float) -> bool:
        """True when the skill may be used; an expired record is removed."""
        where = "WHERE groupid = ? AND userid = ? AND modeid = ?"
        args = (gid, uid, mode)
        with self._lock:
            row = self._db.execute(f"SELECT time FROM cdsheet {where}", args).fetchone()
            if row is None:
                return True
            used = datetime.fromtimestamp(row[0])
            hours = (self._now() - used).total_seconds() / 3600
            if hours > cd_time:
                self._db.execute(f"DELETE FROM cdsheet {where}", args)
                self._db.commit()
                return True
            return False

    def close(self) -> None:
        with self._lock:
            self._db.close()


def slice_name(name: str, measure: Callable[[str], float]) -> str:
    """Cut ``name`` so that it fits 350 units wide, marking the cut with "......"."""
    width = 0
    kept = 0
    for i, ch in enumerate(name):
        width += int(measure(ch))
        if width > 350:
            break
        kept = i
    if width > 350:
        return name[: max(kept - 1, 0)] + "......"
    return name


def _cooling(registry: Registry, gid: int, uid: int, skill: int) -> bool:
    return not registry.compare_cd_time(gid, uid, skill, registry.get_cd_time(gid))


_IN_CD = "你的技能还在CD中..."


def check_single(registry: Registry, gid: int, uid: int, target: int) -> str | None:
    """Whether ``uid`` may propose to ``target``: None if so, else the refusal."""
    if _cooling(registry, gid, uid, SKILL_PROPOSE):
        return _IN_CD
    can_match, _ = registry.modes(gid)
    if not can_match:
        return "你群包分配,别在娶妻上面下功夫，好好水群"
    if registry.open_day(gid):
        return None
    info, status = registry.lookup(gid, uid)
    if info is not None:
        if info.is_noble_single:
            return "今天的你是单身贵族噢"
        if (status is Status.TOP and info.target == target) or (
            status is Status.BOTTOM and info.user == target
        ):
            return "笨蛋！你们已经在一起了！"
        if status is Status.TOP:
            return "笨蛋~你家里还有个吃白饭的w"
        return "该是0就是0，当0有什么不好"
    tinfo, tstatus = registry.lookup(gid, target)
    if tinfo is None:
        return None
    if tinfo.is_noble_single:
        return "今天的ta是单身贵族噢"
    if tstatus is Status.TOP:
        return "他有别的女人了，你该放下了"
    return "ta被别人娶了，你来晚力"


def check_mistress(registry: Registry, gid: int, uid: int, target: int) -> str | None:
    """Whether ``uid`` may steal ``target`` from their partner: None if so, else the refusal."""
    if _cooling(registry, gid, uid, SKILL_MISTRESS):
        return _IN_CD
    _, can_ntr = registry.modes(gid)
    if not can_ntr:
        return "你群发布了牛头人禁止令，放弃吧"
    if registry.open_day(gid):
        return "ta现在还是单身哦，快向ta表白吧！"
    tinfo, tstatus = registry.lookup(gid, target)
    if tinfo is None:
        if target == uid:
            return None
        return "ta现在还是单身哦，快向ta表白吧！"
    if tinfo.is_noble_single:
        return "今天的ta是单身贵族噢"
    if (tstatus is Status.TOP and tinfo.target == target) or (
        tstatus is Status.BOTTOM and tinfo.user == target
    ):
        return "笨蛋！你们已经在一起了！"
    info, status = registry.lookup(gid, uid)
    if info is None:
        return None
    if info.is_noble_single:
        return "今天的你是单身贵族噢"
    if status is Status.TOP:
        return "打灭，不给纳小妾！"
    return "该是0就是0，当0有什么不好"


def check_divorce(registry: Registry, gid: int, uid: int) -> str | None:
    """Whether ``uid`` may divorce: None if so, else the refusal."""
    if _cooling(registry, gid, uid, SKILL_DIVORCE):
        return _IN_CD
    _, status = registry.lookup(gid, uid)
    if status is Status.SINGLE:
        return "今天你还没结婚哦"
    return None


def check_matchmaking(registry: Registry, gid: int, uid: int, one: int, zero: int) -> str | None:
    """Whether ``uid`` may pair ``one`` with ``zero``: None if so, else the refusal."""
    if _cooling(registry, gid, uid, SKILL_MATCHMAKING):
        return _IN_CD
    if one == uid or zero == uid:
        return "禁止自己给自己做媒!"
    if one == zero:
        return "你这个媒人XP很怪咧，不能这样噢"
    if registry.open_day(gid):
        return None
    info, status = registry.lookup(gid, one)
    if info is not None:
        if info.is_noble_single:
            return "今天的攻方是单身贵族噢"
        if (status is Status.TOP and info.target == zero) or (
            status is Status.BOTTOM and info.user == zero
        ):
            return "笨蛋！ta们已经在一起了！"
        return "攻方不是单身,不允许给这种人做媒!"
    zinfo, _ = registry.lookup(gid, zero)
    if zinfo is None:
        return None
    if zinfo.is_noble_single:
        return "今天的你是单身贵族噢"
    return "受方不是单身,不允许给这种人做媒!"