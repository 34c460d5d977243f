"""Simple MIDI composition from note strings, and an ear-training quiz.

A note string is a run of notes such as ``CCGGAAGR``. Each note is a letter
``A``-``G`` optionally followed by ``b``/``#``, an octave number (default 5)
and ``<n`` for a length of 2**n quarter notes. ``R`` is a rest and takes the
same ``<n`` suffix. Spaces are ignored.
"""

from __future__ import annotations

import io
import math
import random
import subprocess
from os import PathLike
from pathlib import Path

import mido

TICKS_PER_BEAT = 960
TEMPO_BPM = 72
DEFAULT_TIMBRE = 40
VELOCITY = 120
QUESTIONS = 5

NOTE_MAP = {
    "C": 60,
    "Db": 61,
    "D": 62,
    "Eb": 63,
    "E": 64,
    "F": 65,
    "Gb": 66,
    "G": 67,
    "Ab": 68,
    "A": 69,
    "Bb": 70,
    "B": 71,
}

_LETTER_BASE = {name: value % 12 for name, value in NOTE_MAP.items() if len(name) == 1}
_MAX_ERRORS = {"个人": 3, "团队": 10}
_PERSONAL_POINTS = {0: 1.0, 1: 0.5, 2: 0.2}
_UINT32 = 0xFFFFFFFF


class MidiSyntaxError(ValueError):
    """A note string could not be parsed."""


def note_name(n: int) -> str:
    """Name of the pitch class of MIDI note ``n`` (flats for black keys)."""
    for name, value in NOTE_MAP.items():
        if value % 12 == n % 12:
            return name
    return ""


def octave(base: int, oct: int) -> int:
    """Place pitch class ``base`` in octave ``oct``, with byte arithmetic; oct is capped at 10."""
    base &= 0xFF
    oct &= 0xFF
    if oct > 10:
        oct = 10
    if oct == 0:
        return base
    res = (base + 12 * oct) & 0xFF
    if res > 127:
        res -= 12
    return res


def process_one(note: str) -> int:
    """MIDI number of a single note such as ``C#6``; unknown characters are ignored."""
    base = 0
    level = 0
    for ch in note.replace(" ", ""):
        if "A" <= ch <= "G":
            base = _LETTER_BASE[ch]
        elif ch == "b":
            base = (base - 1) & 0xFF
        elif ch == "#":
            base = (base + 1) & 0xFF
        elif "0" <= ch <= "9":
            level = (level * 10 + ord(ch) - ord("0")) & 0xFF
    if level == 0:
        level = 5
    return octave(base, level)


def random_target(rng: random.Random) -> int:
    """A random quiz note between G4 and E7."""
    return 55 + rng.randrange(34)


def target_answer(target: int) -> str:
    """The note string that names ``target``."""
    return note_name(target) + str(target // 12)


def _ticks(length: int) -> int:
    """Ticks for 2**length quarter notes, with 32-bit wrap-around."""
    if length >= 0:
        return (TICKS_PER_BEAT << length) & _UINT32 if length < 32 else 0
    shift = -length
    if shift >= 32:
        raise MidiSyntaxError(f"时值过短: <{length}")
    return TICKS_PER_BEAT >> shift


def _atoi(digits: str) -> int:
    try:
        return int(digits)
    except ValueError:
        return 0


def build_track(text: str, timbre: int) -> mido.MidiTrack:
    """Turn a note string into a single MIDI track played with instrument ``timbre``."""
    track = mido.MidiTrack()
    track.append(mido.MetaMessage("time_signature", numerator=4, denominator=4, time=0))
    track.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(TEMPO_BPM), time=0))
    track.append(mido.MetaMessage("instrument_name", name="Violin", time=0))
    track.append(mido.Message("program_change", channel=0, program=timbre & 0x7F, time=0))

    data = text.replace(" ", "").encode("utf-8")
    size = len(data)
    i = 0
    delay = 0
    while i < size:
        base = 0
        level = 0
        rest = False
        digits = []
        while True:
            ch = chr(data[i])
            if ch == "R":
                rest = True
                i += 1
            elif "A" <= ch <= "G":
                base = _LETTER_BASE[ch]
                i += 1
            elif ch == "b":
                base = (base - 1) & 0xFF
                i += 1
            elif ch == "#":
                base = (base + 1) & 0xFF
                i += 1
            elif "0" <= ch <= "9":
                level = (level * 10 + ord(ch) - ord("0")) & 0xFF
                i += 1
            elif ch == "<":
                i += 1
                while i < size and (chr(data[i]) == "-" or "0" <= chr(data[i]) <= "9"):
                    digits.append(chr(data[i]))
                    i += 1
            else:
                raise MidiSyntaxError(f"无法解析第{i}个位置的{ch}字符")
            if i >= size:
                break
            nxt = chr(data[i])
            if "A" <= nxt <= "G" or nxt == "R":
                break
        length = _atoi("".join(digits))
        if rest:
            delay = _ticks(length)
            continue
        if level == 0:
            level = 5
        note = octave(base, level) & 0x7F
        track.append(
            mido.Message("note_on", channel=0, note=note, velocity=VELOCITY, time=delay)
        )
        track.append(
            mido.Message("note_off", channel=0, note=note, velocity=0, time=_ticks(length))
        )
        delay = 0
    track.append(mido.MetaMessage("end_of_track", time=0))
    return track


def make_midi(path: str | PathLike, text: str, timbre: int) -> None:
    """Write the note string to a MIDI file; an existing file is left as it is."""
    target = Path(path)
    if target.exists():
        return
    midi = mido.MidiFile(type=0, ticks_per_beat=TICKS_PER_BEAT)
    midi.tracks.append(build_track(text, timbre))
    midi.save(str(target))


def _log2_round(value: float) -> int | None:
    """round(log2(value)) rounding halves away from zero; None when value is not positive."""
    if value <= 0:
        return None
    v = math.log2(value)
    return int(math.copysign(math.floor(abs(v) + 0.5), v))


def midi_to_text(data: bytes, track_no: int) -> str:
    """Render one track of a MIDI file back into a note string.

    Unreadable data or a missing track gives an empty string.
    """
    try:
        midi = mido.MidiFile(file=io.BytesIO(data))
    except (OSError, EOFError, ValueError, KeyError):
        return ""
    if not 0 <= track_no < len(midi.tracks):
        return ""

    parts: list[str] = []
    start = end = 0.0
    start_note = end_note = 0
    abs_ticks = 0
    for msg in midi.tracks[track_no]:
        abs_ticks += msg.time
        if msg.is_meta:
            continue
        is_on = msg.type == "note_on" and msg.velocity > 0
        is_off = msg.type == "note_off" or (msg.type == "note_on" and msg.velocity == 0)
        if is_on:
            start = float(abs_ticks)
            start_note = msg.note
        if is_off:
            end = float(abs_ticks)
            end_note = msg.note
            if start_note == end_note:
                parts.append(note_name(msg.note))
                level = msg.note // 12
                if level != 5:
                    parts.append(str(level))
                power = _log2_round((end - start) / TICKS_PER_BEAT)
                if power is not None and power >= -4 and power != 0:
                    parts.append(f"<{power}")
                start_note = end_note = 0
        if is_on and start > end:
            power = _log2_round((start - end) / TICKS_PER_BEAT)
            if power == 0:
                parts.append("R")
            elif power is not None and power >= -4:
                parts.append(f"R<{power}")
    return "".join(parts)


def str_to_music(text: str, midi_path: str | PathLike, timbre: int) -> Path:
    """Write the MIDI file and render it to WAV with timidity; returns the WAV path."""
    make_midi(midi_path, text, timbre)
    wav = Path(str(midi_path).replace(".mid", ".wav"))
    subprocess.run(["timidity", str(midi_path), "-Ow", "-o", str(wav)], check=True)
    return wav


class TimbreSettings:
    """Instrument choice per group, or per user in private chats."""

    def __init__(self) -> None:
        self._values: dict[int, int] = {}

    @staticmethod
    def _key(gid: int, uid: int) -> int:
        return gid if gid != 0 else -uid

    def set(self, gid: int, uid: int, timbre: int) -> None:
        if not 0 <= timbre <= 127:
            raise ValueError("音色应该在0~127之间")
        self._values[self._key(gid, uid)] = timbre

    def get(self, gid: int, uid: int) -> int:
        return self._values.get(self._key(gid, uid), DEFAULT_TIMBRE)


class ListeningQuiz:
    """Five rounds of naming a played note, alone ("个人") or as a group ("团队")."""

    def __init__(self, mode: str, rng: random.Random | None = None) -> None:
        if mode not in _MAX_ERRORS:
            raise ValueError(f"unknown quiz mode: {mode!r}")
        self.mode = mode
        self.max_errors = _MAX_ERRORS[mode]
        self._rng = rng if rng is not None else random.Random()
        self.round = 1
        self.error_count = 0
        self._scores: dict[int, float] = {}
        self._new_question()

    def _new_question(self) -> None:
        self.target = random_target(self._rng)
        self.answer = target_answer(self.target)

    def submit(self, user_id: int, reply: str) -> str:
        """Judge one reply and return the text to answer it with."""
        if self.finished():
            raise RuntimeError("the quiz is over")
        n = process_one(reply)
        if n != self.target:
            self.error_count += 1
        if n != self.target and self.error_count != self.max_errors:
            return f"回答错误, 错误次数为{self.error_count}, 请继续回答"

        if n == self.target:
            text = "恭喜你回答正确, 答案是: " + self.answer
        else:
            text = "回答错误, 答案是: " + self.answer + ", 错误次数已达3次, 进入下一关"
        if self.mode == "个人":
            gained = _PERSONAL_POINTS.get(self.error_count)
        else:
            gained = 1.0 if self.error_count != self.max_errors else None
        if gained is not None:
            self._scores[user_id] = self._scores.get(user_id, 0.0) + gained
        self.round += 1
        if not self.finished():
            self.error_count = 0
            self._new_question()
        return text

    def finished(self) -> bool:
        return self.round == QUESTIONS + 1

    def scores(self) -> dict[int, float]:
        return dict(self._scores)