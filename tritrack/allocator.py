"""Greedy allocation of notes onto the three fixed output tracks.

Notes are processed once, in global order (start ascending, higher pitch
first on ties).  For each note:

  1. If its source track already has an affinity, try that output track
     alone first (fast path).
  2. Otherwise rank the tracks: a pitch-based suggestion first (Main Theme
     for the highest pitch at that onset, Chord otherwise), then the rest in
     fixed role order.
  3. Walk the ranking.  A track with free time takes the note verbatim.  A
     busy track may still take it when the collision can be resolved by
     truncating either the incoming note (it runs into a later note) or the
     note already placed (it sustains past the incoming note entirely).
     Truncations that would leave 0.01s or less are refused.
  4. A note no track accepts is dropped.

Decisions are never revisited.  The first track a source track lands on
becomes its affinity for the rest of the pass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .notes import EPSILON, AllocatedNote, NoteEvent, find_overlap, global_order
from .roles import ROLE_COUNT, TrackRole, ranking_with_first

MIN_TRUNCATED_DURATION = 0.01

TRANSFER = "transfer"
TRUNCATE_INCOMING = "truncate_incoming"
TRUNCATE_EXISTING = "truncate_existing"
DROP = "drop"
EVENT_KINDS = (TRANSFER, TRUNCATE_INCOMING, TRUNCATE_EXISTING, DROP)


@dataclass(frozen=True)
class AllocatorConfig:
    epsilon: float = EPSILON
    min_truncated_duration: float = MIN_TRUNCATED_DURATION
    # Off: the lowest pitch at an onset is suggested Chord like any other
    # non-highest note.  On: it is suggested Base.
    bass_for_lowest: bool = False


@dataclass(frozen=True)
class AllocationEvent:
    """Something worth reporting that happened to one note.

    ``track`` is where the note landed (None for drops).  ``suggested`` is
    set for transfers.  ``new_duration`` is the shortened duration for both
    truncation kinds; ``shortened`` is the already-placed note after a
    ``truncate_existing``.
    """

    kind: str
    note: NoteEvent
    track: Optional[TrackRole] = None
    suggested: Optional[TrackRole] = None
    new_duration: Optional[float] = None
    shortened: Optional[AllocatedNote] = None


@dataclass
class OutputTrack:
    role: TrackRole
    notes: List[AllocatedNote] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.role.label

    def __len__(self) -> int:
        return len(self.notes)


@dataclass
class AllocationResult:
    tracks: Tuple[OutputTrack, ...]
    events: List[AllocationEvent]
    affinity: Dict[int, TrackRole]
    input_count: int
    dropped: List[NoteEvent]

    def track(self, role: TrackRole) -> OutputTrack:
        return self.tracks[role]

    @property
    def placed_count(self) -> int:
        return sum(len(t.notes) for t in self.tracks)

    @property
    def truncated_count(self) -> int:
        return sum(1 for t in self.tracks for n in t.notes if n.truncated)

    def events_of(self, kind: str) -> List[AllocationEvent]:
        return [ev for ev in self.events if ev.kind == kind]


class _AllocationPass:
    """State for one run: per-track note lists and the affinity map."""

    def __init__(self, notes: Sequence[NoteEvent], config: AllocatorConfig):
        self.config = config
        self.notes = global_order(notes)
        self.tracks: List[List[AllocatedNote]] = [[] for _ in range(ROLE_COUNT)]
        self.affinity: Dict[int, TrackRole] = {}
        self.events: List[AllocationEvent] = []
        self.dropped: List[NoteEvent] = []

        self._max_pitch_at: Dict[float, int] = {}
        self._min_pitch_at: Dict[float, int] = {}
        for note in self.notes:
            hi = self._max_pitch_at.get(note.start)
            lo = self._min_pitch_at.get(note.start)
            self._max_pitch_at[note.start] = note.pitch if hi is None else max(hi, note.pitch)
            self._min_pitch_at[note.start] = note.pitch if lo is None else min(lo, note.pitch)

    def run(self) -> AllocationResult:
        for note in self.notes:
            self._allocate(note)

        for notes in self.tracks:
            notes.sort(key=lambda n: n.start)

        return AllocationResult(
            tracks=tuple(OutputTrack(role, self.tracks[role]) for role in TrackRole),
            events=self.events,
            affinity=dict(self.affinity),
            input_count=len(self.notes),
            dropped=self.dropped,
        )

    def suggest(self, note: NoteEvent) -> TrackRole:
        if note.pitch == self._max_pitch_at[note.start]:
            return TrackRole.MAIN_THEME
        if self.config.bass_for_lowest and note.pitch == self._min_pitch_at[note.start]:
            return TrackRole.BASE
        return TrackRole.CHORD

    def _allocate(self, note: NoteEvent) -> None:
        preferred = self.affinity.get(note.origin)
        if preferred is not None:
            ranking = ranking_with_first(preferred)
            target = self.tracks[preferred]
            if find_overlap(target, note.start, note.end, self.config.epsilon) is None:
                target.append(AllocatedNote.from_event(note))
                return
        else:
            ranking = ranking_with_first(self.suggest(note))

        for pos, role in enumerate(ranking):
            if role == preferred:
                continue
            if self._try_track(note, role, preferred, ranking[0], pos):
                return

        self.dropped.append(note)
        self.events.append(AllocationEvent(DROP, note))

    def _try_track(
        self,
        note: NoteEvent,
        role: TrackRole,
        preferred: Optional[TrackRole],
        suggested: TrackRole,
        pos: int,
    ) -> bool:
        eps = self.config.epsilon
        floor = self.config.min_truncated_duration
        notes = self.tracks[role]

        hit = find_overlap(notes, note.start, note.end, eps)
        if hit is None:
            notes.append(AllocatedNote.from_event(note))
            self._bind(note, role)
            if preferred is not None or pos != 0:
                self.events.append(
                    AllocationEvent(
                        TRANSFER,
                        note,
                        track=role,
                        suggested=preferred if preferred is not None else suggested,
                    )
                )
            return True

        existing = notes[hit]

        # Incoming note runs into a later note: cut its tail.
        if note.start < existing.start and note.end > existing.start + eps:
            new_duration = existing.start - note.start
            if new_duration > floor:
                placed = AllocatedNote.from_event(note).truncated_to(existing.start)
                if find_overlap(notes, placed.start, placed.end, eps) is None:
                    notes.append(placed)
                    self._bind(note, role)
                    self.events.append(
                        AllocationEvent(TRUNCATE_INCOMING, note, track=role, new_duration=new_duration)
                    )
                    return True

        # Placed note sustains past the incoming one: cut the placed note.
        if (
            existing.end > note.start + eps
            and existing.end > note.end + eps
            and existing.start < note.start - eps
        ):
            new_duration = note.start - existing.start
            if new_duration > floor and find_overlap(notes, note.start, note.end, eps, skip=hit) is None:
                shortened = existing.truncated_to(note.start)
                notes[hit] = shortened
                notes.append(AllocatedNote.from_event(note))
                self._bind(note, role)
                self.events.append(
                    AllocationEvent(
                        TRUNCATE_EXISTING,
                        note,
                        track=role,
                        new_duration=new_duration,
                        shortened=shortened,
                    )
                )
                return True

        return False

    def _bind(self, note: NoteEvent, role: TrackRole) -> None:
        if note.origin not in self.affinity:
            self.affinity[note.origin] = role


class TrackAllocator:
    """Distribute notes from any number of source tracks onto three tracks.

    The allocator holds configuration only; every ``allocate`` call starts
    from empty tracks and an empty affinity map.
    """

    def __init__(self, config: Optional[AllocatorConfig] = None):
        self.config = config or AllocatorConfig()

    def allocate(self, notes: Iterable[NoteEvent]) -> AllocationResult:
        return _AllocationPass(list(notes), self.config).run()


def allocate_notes(
    notes: Iterable[NoteEvent],
    config: Optional[AllocatorConfig] = None,
) -> AllocationResult:
    return TrackAllocator(config).allocate(notes)
