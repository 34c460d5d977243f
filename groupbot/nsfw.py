"""Verdicts on image classification scores."""

from __future__ import annotations

from dataclasses import dataclass

THRESHOLD = 0.3
HSO_IMAGE = "https://gchat.qpic.cn/gchatpic_new//--4234EDEC5F147A4C319A41149D7E0EA9/0"


@dataclass(frozen=True)
class Picture:
    """Class probabilities of one image."""

    drawings: float = 0.0
    hentai: float = 0.0
    neutral: float = 0.0
    porn: float = 0.0
    sexy: float = 0.0


def _tags(p: Picture) -> list[str]:
    tags = []
    if p.hentai > THRESHOLD:
        tags.append(" hentai")
    if p.porn > THRESHOLD:
        tags.append(" porn")
    if p.sexy > THRESHOLD:
        tags.append(" hso")
    return tags


def judge(p: Picture) -> str:
    """The verdict sent when asked to score an image."""
    if p.neutral > THRESHOLD:
        return "普通哦"
    kind = "二次元" if p.drawings > THRESHOLD or p.neutral < THRESHOLD else "三次元"
    return kind + "".join(_tags(p))


def auto_judge(p: Picture) -> str | None:
    """The verdict sent unasked, or None when the image is harmless."""
    if p.neutral > THRESHOLD:
        return None
    kind = "二次元" if p.drawings > THRESHOLD else "三次元"
    tags = _tags(p)
    if not tags:
        return None
    return kind + "".join(tags)