"""Human-readable reporting for allocation results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from .allocator import (
    DROP,
    TRANSFER,
    TRUNCATE_EXISTING,
    TRUNCATE_INCOMING,
    AllocationEvent,
    AllocationResult,
)

TABLE_COLUMNS = ("Track", "Time", "End", "Duration", "Midi", "Velocity", "OrigTrack")


@dataclass(frozen=True)
class SummaryRow:
    track: str
    time: float
    end: float
    duration: float
    pitch: int
    velocity: int
    origin: int

    def cells(self) -> List[str]:
        return [
            self.track,
            f"{self.time:.4f}",
            f"{self.end:.4f}",
            f"{self.duration:.4f}",
            str(self.pitch),
            str(self.velocity),
            str(self.origin),
        ]


def describe_event(event: AllocationEvent) -> str:
    note = event.note
    where = f"time={note.start:.4f} midi={note.pitch}"
    if event.kind == TRANSFER:
        return (
            f"transfer: {where}, suggested track {event.suggested.label} busy, "
            f"placed on {event.track.label}"
        )
    if event.kind == TRUNCATE_INCOMING:
        return (
            f"truncate: {where}, duration {note.duration:.4f} -> "
            f"{event.new_duration:.4f} on {event.track.label}"
        )
    if event.kind == TRUNCATE_EXISTING:
        held = event.shortened
        return (
            f"truncate placed note: time={held.start:.4f} midi={held.pitch}, "
            f"new duration {event.new_duration:.4f} to make room for {where} "
            f"on {event.track.label}"
        )
    if event.kind == DROP:
        return f"drop: {where}, every track busy"
    raise ValueError(f"unknown allocation event kind {event.kind!r}")


def allocation_rows(result: AllocationResult) -> List[SummaryRow]:
    """One row per placed note, ordered by time then track name."""

    rows = [
        SummaryRow(
            track=track.name,
            time=note.start,
            end=note.end,
            duration=note.duration,
            pitch=note.pitch,
            velocity=note.velocity,
            origin=note.origin,
        )
        for track in result.tracks
        for note in track.notes
    ]
    rows.sort(key=lambda r: (round(r.time, 4), r.track))
    return rows


def format_table(rows: Sequence[SummaryRow]) -> str:
    body = [row.cells() for row in rows]
    widths = [len(col) for col in TABLE_COLUMNS]
    for cells in body:
        widths = [max(w, len(c)) for w, c in zip(widths, cells)]

    def _line(cells: Sequence[str]) -> str:
        return "  ".join(c.ljust(w) for c, w in zip(cells, widths)).rstrip()

    lines = [_line(TABLE_COLUMNS), _line(["-" * w for w in widths])]
    lines.extend(_line(cells) for cells in body)
    return "\n".join(lines)


def track_counts(result: AllocationResult) -> Dict[str, int]:
    return {track.name: len(track.notes) for track in result.tracks}
