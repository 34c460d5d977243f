"""Group management helpers: greetings, mute durations, join checks and essence listings."""

from __future__ import annotations

import hashlib
import random
import re
import sqlite3
import threading
from datetime import datetime
from os import PathLike
from typing import Callable, Iterable, Mapping

MAX_MUTE_MINUTES = 43199
GIST_RAW = "https://gist.githubusercontent.com/{}/{}/raw/{}"
GIST_WINDOW_SECONDS = 600
LUCKY_CANDIDATES = 10

# bits kept in the plugin's per-group data word
VERIFY_SET = 0x1
VERIFY_CLEAR = 0x7FFF_FFFF_FFFF_FFFE
GIST_SET = 0x10
GIST_CLEAR = 0x7FFF_FFFF_FFFF_FFFD

_ENABLE_WORDS = ("开启", "打开", "启用")
_DISABLE_WORDS = ("关闭", "关掉", "禁用")
_HOUR_UNITS = ("小时", "hour", "hours", "h")
_DAY_UNITS = ("天", "day", "days", "d")
_ANSWER_MARK = "答案："
_TIME_FORMAT = "%Y/%m/%d %H:%M:%S"
_INTEGER = re.compile(r"[+-]?[0-9]+")


class GreetingStore:
    """Welcome and farewell texts per group, and members admitted through a gist."""

    def __init__(self, path: str | PathLike) -> None:
        self._db = sqlite3.connect(str(path), check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock:
            self._db.execute(
                "CREATE TABLE IF NOT EXISTS welcome (gid INTEGER PRIMARY KEY, msg TEXT)"
            )
            self._db.execute(
                "CREATE TABLE IF NOT EXISTS farewell (gid INTEGER PRIMARY KEY, msg TEXT)"
            )
            self._db.execute(
                "CREATE TABLE IF NOT EXISTS member (qq INTEGER PRIMARY KEY, ghun TEXT)"
            )
            self._db.commit()

    def __enter__(self) -> GreetingStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _set(self, table: str, gid: int, msg: str) -> None:
        with self._lock:
            self._db.execute(
                f"INSERT OR REPLACE INTO {table} (gid, msg) VALUES (?, ?)", (gid, msg)
            )
            self._db.commit()

    def _get(self, table: str, gid: int) -> str | None:
        with self._lock:
            row = self._db.execute(f"SELECT msg FROM {table} WHERE gid = ?", (gid,)).fetchone()
        return None if row is None else row[0]

    def set_welcome(self, gid: int, msg: str) -> None:
        self._set("welcome", gid, msg)

    def get_welcome(self, gid: int) -> str | None:
        """The group's welcome template, or None when none was set."""
        return self._get("welcome", gid)

    def set_farewell(self, gid: int, msg: str) -> None:
        self._set("farewell", gid, msg)

    def get_farewell(self, gid: int) -> str | None:
        """The group's farewell template, or None when none was set."""
        return self._get("farewell", gid)

    def has_member(self, ghun: str) -> bool:
        """Whether the GitHub user already joined through a gist."""
        with self._lock:
            row = self._db.execute("SELECT 1 FROM member WHERE ghun = ?", (ghun,)).fetchone()
        return row is not None

    def add_member(self, qq: int, ghun: str) -> None:
        with self._lock:
            self._db.execute(
                "INSERT OR REPLACE INTO member (qq, ghun) VALUES (?, ?)", (qq, ghun)
            )
            self._db.commit()

    def close(self) -> None:
        with self._lock:
            self._db.close()


def mute_minutes(amount: int, unit: str) -> int:
    """Mute length in minutes for ``amount`` of ``unit``, capped just under a month."""
    minutes = int(amount)
    if unit in _HOUR_UNITS:
        minutes *= 60
    elif unit in _DAY_UNITS:
        minutes *= 60 * 24
    if minutes >= MAX_MUTE_MINUTES + 1:
        minutes = MAX_MUTE_MINUTES
    return minutes


def unescape_cq(text: str) -> str:
    """Undo the escaping the chat server applies to CQ code characters."""
    return (
        text.replace("&#91;", "[")
        .replace("&#93;", "]")
        .replace("&#44;", ",")
        .replace("&amp;", "&")
    )


def avatar_url(uid: int) -> str:
    return f"http://q4.qlogo.cn/g?b=qq&nk={uid}&s=640"


def render_welcome(template: str, uid: int, nickname: str, gid: int, groupname: str) -> str:
    """Fill the placeholders {at} {nickname} {avatar} {uid} {gid} {groupname} with CQ codes."""
    replacements = (
        ("{at}", f"[CQ:at,qq={uid}]"),
        ("{nickname}", nickname),
        ("{avatar}", f"[CQ:image,file={avatar_url(uid)}]"),
        ("{uid}", str(uid)),
        ("{gid}", str(gid)),
        ("{groupname}", groupname),
    )
    text = template
    for placeholder, value in replacements:
        text = text.replace(placeholder, value)
    return text


def toggle_flag(data: int, option: str, set_mask: int, clear_mask: int) -> int:
    """Switch a feature bit on ("开启"/"打开"/"启用") or off ("关闭"/"关掉"/"禁用")."""
    if option in _ENABLE_WORDS:
        return data | set_mask
    if option in _DISABLE_WORDS:
        return data & clear_mask
    raise ValueError(f"unknown option: {option!r}")


def parse_gist_answer(comment: str) -> tuple[str, str]:
    """Split the join request's answer "username/gisthash" into its two parts."""
    ans = comment[comment.find(_ANSWER_MARK) + len(_ANSWER_MARK):]
    divi = ans.find("/")
    if divi <= 0:
        raise ValueError("格式错误!")
    return ans[:divi], ans[divi + 1:]


def gist_url(ghun: str, gist_hash: str, gid: int) -> str:
    """Raw URL of the gist file named after the md5 of the group number."""
    name = hashlib.md5(str(gid).encode("utf-8")).hexdigest()
    return GIST_RAW.format(ghun, gist_hash, name)


def check_new_user(
    store: GreetingStore,
    qq: int,
    gid: int,
    ghun: str,
    gist_hash: str,
    fetch: Callable[[str], bytes],
    now: float,
) -> tuple[bool, str]:
    """Approve a join request whose gist holds a unix time within ten minutes of ``now``.

    Returns (approved, reason); an approved user is recorded in ``store``.
    """
    if store.has_member(ghun):
        return False, "该github用户已入群"
    try:
        data = fetch(gist_url(ghun, gist_hash, gid))
    except OSError as err:
        return False, "无法连接到gist: " + str(err)
    text = data.decode("utf-8", "replace") if isinstance(data, (bytes, bytearray)) else str(data)
    if not _INTEGER.fullmatch(text):
        return False, "时间戳格式错误: " + text
    stamp = int(text)
    if abs(int(now) - stamp) < GIST_WINDOW_SECONDS:
        store.add_member(qq, ghun)
        return True, ""
    return False, "时间戳超时"


def pick_lucky_member(
    members: Iterable[Mapping],
    self_id: int,
    user_id: int,
    rng: random.Random,
) -> str:
    """Pick one of the ten most recently active members and say who it is."""
    recent = sorted(members, key=lambda m: int(m.get("last_sent_time", 0)))[-LUCKY_CANDIDATES:]
    if not recent:
        raise ValueError("no members to pick from")
    who = recent[rng.randrange(len(recent))]
    uid = int(who.get("user_id", 0))
    if uid == self_id:
        return "幸运儿居然是我自己"
    if uid == user_id:
        return "哎呀，就是你自己了"
    nick = who.get("card") or who.get("nickname") or ""
    return nick + " 就是你啦！"


def format_essence(info: Mapping) -> str:
    """Describe one essence message of the group."""

    def when(key: str) -> str:
        return datetime.fromtimestamp(int(info.get(key, 0))).strftime(_TIME_FORMAT)

    return (
        f"信息ID: {int(info.get('message_id', 0))}\n"
        f"发送者昵称: {info.get('sender_nick', '')}\n"
        f"发送者QQ 号: {int(info.get('sender_id', 0))}\n"
        f"消息发送时间: {when('sender_time')}\n"
        f"操作者昵称: {info.get('operator_nick', '')}\n"
        f"操作者QQ 号: {int(info.get('operator_id', 0))}\n"
        f"精华设置时间: {when('operator_time')}"
    )


def make_quiz(rng: random.Random) -> tuple[int, int, int]:
    """An addition question for new members: (a, b, a + b) with a, b below 100."""
    a = rng.randrange(100)
    b = rng.randrange(100)
    return a, b, a + b


def check_quiz_answer(text: str, expected: int) -> bool | None:
    """True when right, False when a wrong number, None when the text is no number."""
    cleaned = text.replace(" ", "")
    if not _INTEGER.fullmatch(cleaned):
        return None
    return int(cleaned) == expected