"""
Suspicious-pattern classification for local input activity.

A detector looks at a short window of raw input events and decides whether
they look scripted rather than human. The heuristics are best-effort; the
rest of the system only relies on ``Detection.suspicious`` and the optional
pattern tag/details, so detectors can be swapped freely.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from statistics import mean, pstdev
from typing import Protocol

POINTER_KINDS = frozenset({"pointer_move", "click"})


@dataclass(frozen=True)
class InputEvent:
    kind: str  # key | pointer_move | click | scroll
    at: float  # monotonic seconds
    x: float | None = None
    y: float | None = None
    key: str | None = None  # key identity for kind="key"; never the typed text


@dataclass(frozen=True)
class Detection:
    suspicious: bool = False
    pattern_type: str | None = None
    details: str | None = None


CLEAN = Detection()


class PatternDetector(Protocol):
    def analyze(self, events: Sequence[InputEvent]) -> Detection: ...


class PeriodicIntervalDetector:
    """Flags events arriving on a metronome, e.g. a jiggler firing every 30s.

    Sub-second cadences are ignored: pointer-move streams are naturally
    paced by the display refresh rate.
    """

    pattern_type = "periodic-interval"

    def __init__(
        self,
        min_events: int = 8,
        max_jitter_seconds: float = 0.015,
        min_interval_seconds: float = 1.0,
    ) -> None:
        self.min_events = min_events
        self.max_jitter_seconds = max_jitter_seconds
        self.min_interval_seconds = min_interval_seconds

    def analyze(self, events: Sequence[InputEvent]) -> Detection:
        if len(events) < self.min_events:
            return CLEAN
        stamps = sorted(e.at for e in events)
        intervals = [b - a for a, b in zip(stamps, stamps[1:])]
        avg = mean(intervals)
        if avg < self.min_interval_seconds:
            return CLEAN
        jitter = pstdev(intervals)
        if jitter > self.max_jitter_seconds:
            return CLEAN
        return Detection(
            suspicious=True,
            pattern_type=self.pattern_type,
            details=(
                f"{len(events)} events every {avg * 1000:.0f}ms "
                f"(jitter {jitter * 1000:.1f}ms)"
            ),
        )


class IdenticalCoordinatesDetector:
    """Flags pointer activity that keeps landing on the exact same pixel."""

    pattern_type = "identical-coordinates"

    def __init__(self, min_events: int = 6, ratio: float = 0.9) -> None:
        self.min_events = min_events
        self.ratio = ratio

    def analyze(self, events: Sequence[InputEvent]) -> Detection:
        points = [
            (e.x, e.y)
            for e in events
            if e.kind in POINTER_KINDS and e.x is not None and e.y is not None
        ]
        if len(points) < self.min_events:
            return CLEAN
        (x, y), hits = Counter(points).most_common(1)[0]
        if hits / len(points) < self.ratio:
            return CLEAN
        return Detection(
            suspicious=True,
            pattern_type=self.pattern_type,
            details=f"{hits}/{len(points)} pointer events at ({x:g}, {y:g})",
        )


class NoVarianceDetector:
    """Flags pointer motion that moves by the same step vector every time."""

    pattern_type = "no-variance"

    def __init__(self, min_events: int = 10) -> None:
        self.min_events = min_events

    def analyze(self, events: Sequence[InputEvent]) -> Detection:
        moves = [
            e for e in sorted(events, key=lambda ev: ev.at)
            if e.kind == "pointer_move" and e.x is not None and e.y is not None
        ]
        if len(moves) < self.min_events:
            return CLEAN
        steps = {(b.x - a.x, b.y - a.y) for a, b in zip(moves, moves[1:])}  # type: ignore[operator]
        if len(steps) != 1:
            return CLEAN
        dx, dy = steps.pop()
        if dx == 0 and dy == 0:
            # Stationary pointer is IdenticalCoordinatesDetector's job
            return CLEAN
        return Detection(
            suspicious=True,
            pattern_type=self.pattern_type,
            details=f"{len(moves)} moves with constant step ({dx:g}, {dy:g})",
        )


def _key_sequence(events: Sequence[InputEvent]) -> list[str]:
    return [
        e.key for e in sorted(events, key=lambda ev: ev.at)
        if e.kind == "key" and e.key is not None
    ]


class RepeatedKeyDetector:
    """Flags the same key pressed over and over, whatever the timing.

    Input sources should deliver one event per physical press; OS key
    auto-repeat from a held key is not a press.
    """

    pattern_type = "repeated-key"

    def __init__(self, min_run: int = 10) -> None:
        self.min_run = min_run

    def analyze(self, events: Sequence[InputEvent]) -> Detection:
        keys = _key_sequence(events)
        best, best_key, run = 0, None, 0
        for i, key in enumerate(keys):
            run = run + 1 if i and key == keys[i - 1] else 1
            if run > best:
                best, best_key = run, key
        if best < self.min_run:
            return CLEAN
        return Detection(
            suspicious=True,
            pattern_type=self.pattern_type,
            details=f"key {best_key!r} pressed {best} times in a row",
        )


class AlternatingKeysDetector:
    """Flags two keys pressed in strict alternation (a b a b ...)."""

    pattern_type = "alternating-keys"

    def __init__(self, min_run: int = 10) -> None:
        self.min_run = min_run

    def analyze(self, events: Sequence[InputEvent]) -> Detection:
        keys = _key_sequence(events)
        best, best_pair, run = 0, None, 1
        for i in range(1, len(keys)):
            if keys[i] == keys[i - 1]:
                run = 1
                continue
            if run >= 2 and keys[i] == keys[i - 2]:
                run += 1
            else:
                run = 2
            if run > best:
                best, best_pair = run, (keys[i - 1], keys[i])
        if best < self.min_run or best_pair is None:
            return CLEAN
        a, b = sorted(best_pair)
        return Detection(
            suspicious=True,
            pattern_type=self.pattern_type,
            details=f"keys {a!r}/{b!r} alternated {best} times",
        )


class CompositeDetector:
    """Runs detectors in order; the first positive verdict wins."""

    def __init__(self, detectors: Sequence[PatternDetector]) -> None:
        self.detectors = list(detectors)

    def analyze(self, events: Sequence[InputEvent]) -> Detection:
        for detector in self.detectors:
            verdict = detector.analyze(events)
            if verdict.suspicious:
                return verdict
        return CLEAN


def default_detector() -> CompositeDetector:
    return CompositeDetector(
        [
            IdenticalCoordinatesDetector(),
            NoVarianceDetector(),
            RepeatedKeyDetector(),
            AlternatingKeysDetector(),
            PeriodicIntervalDetector(),
        ]
    )
