"""Per-group folders of wife pictures, one drawn for each member every day."""

from __future__ import annotations

import hashlib
import random
from datetime import date
from os import PathLike
from pathlib import Path

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def base36(n: int) -> str:
    """``n`` in base 36 with lower-case digits."""
    if n == 0:
        return "0"
    sign = "-" if n < 0 else ""
    n = abs(n)
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(_DIGITS[r])
    return sign + "".join(reversed(digits))


def clean_wife_name(text: str, command: str) -> str:
    """The name after the last ``command`` in ``text``, without spaces or slashes."""
    name = text.replace(" ", "")
    idx = name.rfind(command)
    if idx >= 0:
        name = name[idx + len(command):]
    return name.replace("/", "").replace("\\", "")


def daily_index(name: str, today: date, count: int) -> int:
    """A choice among ``count`` that is fixed for one name on one day."""
    if count <= 0:
        raise ValueError("count must be positive")
    key = f"{name}{today.year}{today.month}{today.day}".encode("utf-8")
    seed = int.from_bytes(hashlib.md5(key).digest()[:8], "little", signed=True)
    return random.Random(seed).randrange(count)


def _check_name(name: str) -> None:
    if not name or "/" in name or "\\" in name:
        raise ValueError("没有找到wife的名字！")


class WifeFolder:
    """Wife pictures stored as ``base/<group in base 36>/<name>``."""

    def __init__(self, base: str | PathLike) -> None:
        self.base = Path(base)

    def group_dir(self, gid: int) -> Path:
        return self.base / base36(gid)

    def draw(self, gid: int, name: str, today: date) -> Path:
        """Today's wife of the member called ``name``."""
        folder = self.group_dir(gid)
        wives = sorted(p.name for p in folder.iterdir()) if folder.is_dir() else []
        if not wives:
            raise LookupError("一个wife也没有哦~")
        if len(wives) == 1:
            return folder / wives[0]
        return folder / wives[daily_index(name, today, len(wives))]

    def add(self, gid: int, name: str, data: bytes) -> Path:
        """Store a picture under ``name``, replacing one of the same name."""
        _check_name(name)
        folder = self.group_dir(gid)
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / name
        path.write_bytes(data)
        return path

    def remove(self, gid: int, name: str) -> None:
        _check_name(name)
        (self.group_dir(gid) / name).unlink()