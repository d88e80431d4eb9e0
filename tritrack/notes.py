"""Note records shared by the loader, the allocator and the writer.

All times are in seconds.  Input notes (``NoteEvent``) are immutable; the
allocator produces ``AllocatedNote`` records, which are immutable as well
and get replaced by index when a placed note has to be shortened.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence

EPSILON = 1e-6


@dataclass(frozen=True)
class NoteEvent:
    """One note from a source track."""

    pitch: int  # MIDI note number 0-127
    start: float  # seconds
    duration: float  # seconds, > 0
    velocity: int  # 0-127
    origin: int  # source track index

    def __post_init__(self) -> None:
        if not (0 <= self.pitch <= 127):
            raise ValueError(f"pitch must be in [0, 127], got {self.pitch}")
        if not (0 <= self.velocity <= 127):
            raise ValueError(f"velocity must be in [0, 127], got {self.velocity}")
        if not self.duration > 0:
            raise ValueError(f"duration must be > 0, got {self.duration}")

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class AllocatedNote:
    """A note placed on an output track.

    ``original_duration`` is the duration the note arrived with; it differs
    from ``duration`` only when the note was truncated.
    """

    pitch: int
    start: float
    duration: float
    velocity: int
    origin: int
    original_duration: float

    @classmethod
    def from_event(cls, note: NoteEvent) -> "AllocatedNote":
        return cls(
            pitch=note.pitch,
            start=note.start,
            duration=note.duration,
            velocity=note.velocity,
            origin=note.origin,
            original_duration=note.duration,
        )

    @property
    def end(self) -> float:
        return self.start + self.duration

    @property
    def truncated(self) -> bool:
        return self.duration < self.original_duration

    def truncated_to(self, end: float) -> "AllocatedNote":
        """Return a copy ending at ``end`` (start is unchanged)."""

        return replace(self, duration=end - self.start)


def overlaps(a_start: float, a_end: float, b_start: float, b_end: float, epsilon: float = EPSILON) -> bool:
    """True when two intervals intersect by more than ``epsilon``.

    Touching intervals (one ends where the other starts) do not overlap.
    """

    return not (a_end <= b_start + epsilon or a_start >= b_end - epsilon)


def find_overlap(
    notes: Sequence[AllocatedNote],
    start: float,
    end: float,
    epsilon: float = EPSILON,
    *,
    skip: Optional[int] = None,
) -> Optional[int]:
    """Index of the first note in ``notes`` overlapping [start, end), or None."""

    for idx, other in enumerate(notes):
        if idx == skip:
            continue
        if overlaps(start, end, other.start, other.end, epsilon):
            return idx
    return None


def global_order(notes: Iterable[NoteEvent]) -> List[NoteEvent]:
    """Sort by start ascending, ties broken by higher pitch first."""

    return sorted(notes, key=lambda n: (n.start, -n.pitch))
