"""Read source MIDI files and write three-track results with mido.

Source side: every track of the input file becomes a ``SourceTrack`` whose
notes carry the track's position in the file as their origin.  Note times
are converted from ticks to seconds through the file's tempo map, which is
built from ``set_tempo`` events on any track.

Output side: a type-1 file with the source's ticks-per-beat and

  track 0  conductor: tempo / time signature / key signature, unchanged
  track 1  "Main Theme"
  track 2  "Chord"
  track 3  "Base"

Note-bearing tracks are always written, even when empty.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import mido

from .allocator import AllocationResult
from .notes import NoteEvent

DEFAULT_TICKS_PER_BEAT = 480
DEFAULT_TEMPO_US = 500000  # 120 BPM
GLOBAL_META_TYPES = ("set_tempo", "time_signature", "key_signature")

# Same-tick ordering on note tracks: name first, releases before attacks.
_MESSAGE_ORDER = {"track_name": 0, "note_off": 1, "note_on": 2}


@dataclass(frozen=True)
class GlobalEvent:
    """A tempo/time-signature/key-signature message at an absolute tick."""

    tick: int
    message: mido.MetaMessage


@dataclass(frozen=True)
class TempoSegment:
    tick_start: int
    tempo_us: int
    seconds_at_start: float


class TempoMap:
    """Piecewise-constant tempo: converts ticks to seconds and back."""

    def __init__(self, changes: Sequence[Tuple[int, int]], ticks_per_beat: int):
        if ticks_per_beat <= 0:
            raise ValueError(f"ticks_per_beat must be > 0, got {ticks_per_beat}")
        self.ticks_per_beat = ticks_per_beat

        ordered = sorted(changes, key=lambda c: c[0])
        if not ordered or ordered[0][0] != 0:
            ordered.insert(0, (0, DEFAULT_TEMPO_US))

        segments: List[TempoSegment] = []
        seconds = 0.0
        for i, (tick, tempo) in enumerate(ordered):
            if i > 0:
                prev = segments[-1]
                seconds += mido.tick2second(tick - prev.tick_start, ticks_per_beat, prev.tempo_us)
            segments.append(TempoSegment(tick_start=tick, tempo_us=tempo, seconds_at_start=seconds))

        self.segments = segments
        self._tick_starts = [s.tick_start for s in segments]
        self._second_starts = [s.seconds_at_start for s in segments]

    @classmethod
    def from_midi(cls, mid: mido.MidiFile, ticks_per_beat: Optional[int] = None) -> "TempoMap":
        changes: List[Tuple[int, int]] = []
        for track in mid.tracks:
            tick = 0
            for msg in track:
                tick += msg.time
                if msg.type == "set_tempo":
                    changes.append((tick, int(msg.tempo)))
        return cls(changes, ticks_per_beat or mid.ticks_per_beat or DEFAULT_TICKS_PER_BEAT)

    def tick_to_seconds(self, tick: int) -> float:
        seg = self.segments[max(bisect_right(self._tick_starts, tick) - 1, 0)]
        return seg.seconds_at_start + mido.tick2second(
            tick - seg.tick_start, self.ticks_per_beat, seg.tempo_us
        )

    def seconds_to_tick(self, seconds: float) -> int:
        seg = self.segments[max(bisect_right(self._second_starts, seconds) - 1, 0)]
        ticks = mido.second2tick(seconds - seg.seconds_at_start, self.ticks_per_beat, seg.tempo_us)
        return max(seg.tick_start + int(round(ticks)), 0)


@dataclass
class SourceTrack:
    index: int
    name: Optional[str]
    notes: List[NoteEvent] = field(default_factory=list)


@dataclass
class SourceMidi:
    tracks: List[SourceTrack]
    ticks_per_beat: int
    tempo_map: TempoMap
    tempos: List[GlobalEvent] = field(default_factory=list)
    time_signatures: List[GlobalEvent] = field(default_factory=list)
    key_signatures: List[GlobalEvent] = field(default_factory=list)

    @property
    def note_count(self) -> int:
        return sum(len(t.notes) for t in self.tracks)

    def all_notes(self) -> List[NoteEvent]:
        return [note for track in self.tracks for note in track.notes]

    def global_events(self) -> List[GlobalEvent]:
        """Tempo, time-signature and key-signature events, ordered by tick."""

        merged = self.tempos + self.time_signatures + self.key_signatures
        return sorted(merged, key=lambda ev: ev.tick)


def _read_track(
    track_idx: int,
    track: mido.MidiTrack,
    tempo_map: TempoMap,
    meta: Dict[str, List[GlobalEvent]],
) -> SourceTrack:
    source = SourceTrack(index=track_idx, name=None)
    tick_spans: List[Tuple[int, int, int, int]] = []  # (onset, end, pitch, velocity)

    # pending[(channel, pitch)] -> stack[(onset_tick, velocity)]
    pending: Dict[Tuple[int, int], List[Tuple[int, int]]] = {}

    abs_tick = 0
    for msg in track:
        abs_tick += msg.time
        if msg.is_meta:
            if msg.type == "track_name" and source.name is None:
                source.name = msg.name
            elif msg.type in GLOBAL_META_TYPES:
                meta[msg.type].append(GlobalEvent(tick=abs_tick, message=msg.copy(time=0)))
            continue

        if msg.type == "note_on" and msg.velocity > 0:
            pending.setdefault((msg.channel, msg.note), []).append((abs_tick, msg.velocity))
            continue

        if msg.type == "note_off" or (msg.type == "note_on" and msg.velocity == 0):
            key = (msg.channel, msg.note)
            starts = pending.get(key)
            if not starts:
                continue
            onset, velocity = starts.pop()
            tick_spans.append((onset, abs_tick, msg.note, velocity))
            if not starts:
                pending.pop(key, None)

    # Notes still held at the end of the track are closed there.
    for (_, pitch), starts in pending.items():
        for onset, velocity in starts:
            tick_spans.append((onset, abs_tick, pitch, velocity))

    tick_spans.sort(key=lambda s: (s[0], s[2]))
    for onset, end, pitch, velocity in tick_spans:
        end = max(end, onset + 1)
        start_s = tempo_map.tick_to_seconds(onset)
        source.notes.append(
            NoteEvent(
                pitch=pitch,
                start=start_s,
                duration=tempo_map.tick_to_seconds(end) - start_s,
                velocity=velocity,
                origin=track_idx,
            )
        )
    return source


def read_midi(mid: mido.MidiFile) -> SourceMidi:
    """Extract per-track notes (in seconds) and global meta events."""

    tpb = mid.ticks_per_beat or DEFAULT_TICKS_PER_BEAT
    tempo_map = TempoMap.from_midi(mid, tpb)
    meta: Dict[str, List[GlobalEvent]] = {name: [] for name in GLOBAL_META_TYPES}

    tracks = [_read_track(idx, track, tempo_map, meta) for idx, track in enumerate(mid.tracks)]

    return SourceMidi(
        tracks=tracks,
        ticks_per_beat=tpb,
        tempo_map=tempo_map,
        tempos=sorted(meta["set_tempo"], key=lambda ev: ev.tick),
        time_signatures=sorted(meta["time_signature"], key=lambda ev: ev.tick),
        key_signatures=sorted(meta["key_signature"], key=lambda ev: ev.tick),
    )


def load_midi(path: Union[str, Path]) -> SourceMidi:
    return read_midi(mido.MidiFile(str(path)))


def _track_from_absolute(events: List[Tuple[int, mido.Message]]) -> mido.MidiTrack:
    track = mido.MidiTrack()
    last_tick = 0
    for tick, msg in events:
        track.append(msg.copy(time=tick - last_tick))
        last_tick = tick
    return track


def build_output_midi(result: AllocationResult, source: SourceMidi) -> mido.MidiFile:
    """Render the three allocated tracks (plus conductor) as a MIDI file."""

    mid = mido.MidiFile(type=1, ticks_per_beat=source.ticks_per_beat)
    tempo_map = source.tempo_map

    conductor = [(ev.tick, ev.message) for ev in source.global_events()]
    mid.tracks.append(_track_from_absolute(conductor))

    for out in result.tracks:
        channel = int(out.role)
        events: List[Tuple[int, mido.Message]] = [(0, mido.MetaMessage("track_name", name=out.name))]
        for note in out.notes:
            on_tick = tempo_map.seconds_to_tick(note.start)
            off_tick = max(tempo_map.seconds_to_tick(note.end), on_tick + 1)
            velocity = max(1, note.velocity)
            events.append(
                (on_tick, mido.Message("note_on", channel=channel, note=note.pitch, velocity=velocity))
            )
            events.append(
                (off_tick, mido.Message("note_off", channel=channel, note=note.pitch, velocity=0))
            )
        events.sort(key=lambda item: (item[0], _MESSAGE_ORDER.get(item[1].type, 2)))
        mid.tracks.append(_track_from_absolute(events))

    return mid


def save_midi(mid: mido.MidiFile, path: Union[str, Path]) -> Path:
    out_path = Path(path).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    mid.save(str(out_path))
    return out_path
