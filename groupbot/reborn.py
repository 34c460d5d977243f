"""Reincarnation simulator: a random country of birth and gender."""

from __future__ import annotations

import json
import random
from os import PathLike
from typing import Iterable

GENDERS = (("男孩子", 50707), ("女孩子", 48292), ("雌雄同体", 1001))
_FAIL_BOUND = 1 << 27


class Reborn:
    """Draws countries by weight; ``areas`` holds (name, weight) pairs."""

    def __init__(self, areas: Iterable[tuple[str, float]], rng: random.Random | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()
        pairs = [(name, int(weight * 1e9)) for name, weight in areas]
        pairs = [(name, w) for name, w in pairs if w > 0]
        if not pairs:
            raise ValueError("zero total weight")
        self._names = [name for name, _ in pairs]
        self._weights = [w for _, w in pairs]

    @classmethod
    def from_json(cls, path: str | PathLike, rng: random.Random | None = None) -> Reborn:
        """Load a JSON list of {"name": ..., "weight": ...} objects."""
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        return cls(((item["name"], float(item["weight"])) for item in data), rng)

    def random_country(self) -> str:
        return self._rng.choices(self._names, weights=self._weights)[0]

    def random_gender(self) -> str:
        names = [g for g, _ in GENDERS]
        weights = [w for _, w in GENDERS]
        return self._rng.choices(names, weights=weights)[0]

    def reborn(self) -> str:
        """The outcome of one reincarnation."""
        if self._rng.getrandbits(31) > _FAIL_BOUND:
            return f"投胎成功！\n您出生在 {self.random_country()}, 是 {self.random_gender()}。"
        return "投胎失败！\n您没能活到出生，祝您下次好运！"