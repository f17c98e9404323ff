# animelog/episodes.py
"""
Episode-mark codec.

Watched progress is tracked at whole or half episode granularity (split
releases are numbered like 3.5). A floating value is snapped to the nearest
mark so that marks can live in a set without float noise creating duplicates:

    fractional part < 0.25  -> whole(floor)
    fractional part > 0.75  -> whole(floor + 1)
    otherwise               -> half(floor), i.e. floor + 0.5
"""
import math
from dataclasses import dataclass
from typing import Iterable, List, Set, Union


@dataclass(frozen=True)
class EpisodeMark:
    number: int
    half: bool = False

    def __hash__(self):
        # whole(n) and half(m) never share a hash
        return hash(self.number * 10 + (5 if self.half else 0))

    def to_value(self) -> Union[int, float]:
        """Wire/storage form: an int for whole marks, n + 0.5 for half marks."""
        if self.half:
            return self.number + 0.5
        return self.number

    def __str__(self) -> str:
        return f"{self.number}.5" if self.half else str(self.number)


def whole(number: int) -> EpisodeMark:
    return EpisodeMark(number, False)


def half(number: int) -> EpisodeMark:
    return EpisodeMark(number, True)


def canonicalize(value: float) -> EpisodeMark:
    """Snap a finite float to its canonical episode mark."""
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"episode must be a finite number, got {value!r}")
    base = math.floor(value)
    frac = value - base
    if frac < 0.25:
        return whole(base)
    if frac > 0.75:
        return whole(base + 1)
    return half(base)


def dump_marks(marks: Iterable[EpisodeMark]) -> List[Union[int, float]]:
    """Serialize a set of marks in ascending order."""
    return [m.to_value() for m in sorted(marks, key=lambda m: m.to_value())]


def load_marks(values: Iterable[Union[int, float]]) -> Set[EpisodeMark]:
    """Re-canonicalize whatever numbers were stored."""
    return {canonicalize(v) for v in values}
