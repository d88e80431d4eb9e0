"""Tests for MIDI loading, tempo conversion and three-track output."""

from __future__ import annotations

from pathlib import Path

import mido
import pytest

from tritrack.allocator import allocate_notes
from tritrack.midi_io import (
    DEFAULT_TICKS_PER_BEAT,
    TempoMap,
    build_output_midi,
    load_midi,
    read_midi,
    save_midi,
)
from tritrack.roles import ROLE_NAMES

TPB = 480


def _build_track(
    notes: list[tuple[int, int, int, int]],
    channel: int,
    name: str | None = None,
) -> mido.MidiTrack:
    """Build one MIDI track from absolute note tuples.

    notes tuple: (onset_tick, pitch, duration_ticks, velocity)
    """
    events: list[tuple[int, mido.Message]] = []
    for onset, pitch, dur, vel in notes:
        events.append((onset, mido.Message("note_on", channel=channel, note=pitch, velocity=vel, time=0)))
        events.append((onset + dur, mido.Message("note_off", channel=channel, note=pitch, velocity=0, time=0)))
    events.sort(key=lambda item: (item[0], 0 if item[1].type == "note_off" else 1))

    track = mido.MidiTrack()
    if name is not None:
        track.append(mido.MetaMessage("track_name", name=name, time=0))
    last_tick = 0
    for tick, msg in events:
        msg.time = tick - last_tick
        track.append(msg)
        last_tick = tick
    return track


def _two_tempo_midi() -> mido.MidiFile:
    """120 BPM for the first bar, then 60 BPM; a melody and a bass lane."""
    mid = mido.MidiFile(ticks_per_beat=TPB)
    conductor = mido.MidiTrack()
    conductor.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(120), time=0))
    conductor.append(mido.MetaMessage("time_signature", numerator=3, denominator=4, time=0))
    conductor.append(mido.MetaMessage("key_signature", key="G", time=0))
    conductor.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(60), time=TPB * 4))
    mid.tracks.append(conductor)

    melody = [(0, 72, TPB, 100), (TPB, 74, TPB, 96), (TPB * 4, 76, TPB, 90)]
    bass = [(0, 40, TPB * 2, 110)]
    mid.tracks.append(_build_track(melody, channel=0, name="Lead"))
    mid.tracks.append(_build_track(bass, channel=1, name="Bass"))
    return mid


class TestTempoMap:
    def test_default_tempo_is_120_bpm(self):
        tempo_map = TempoMap([], TPB)
        assert tempo_map.tick_to_seconds(TPB) == pytest.approx(0.5)
        assert tempo_map.seconds_to_tick(0.5) == TPB

    def test_tempo_change_applies_after_its_tick(self):
        tempo_map = TempoMap.from_midi(_two_tempo_midi())

        assert tempo_map.tick_to_seconds(TPB * 2) == pytest.approx(1.0)
        assert tempo_map.tick_to_seconds(TPB * 4) == pytest.approx(2.0)
        assert tempo_map.tick_to_seconds(TPB * 5) == pytest.approx(3.0)

    def test_seconds_to_tick_inverts_tick_to_seconds(self):
        tempo_map = TempoMap.from_midi(_two_tempo_midi())
        for tick in (0, 1, 240, TPB * 4 - 1, TPB * 4, TPB * 7 + 13):
            assert tempo_map.seconds_to_tick(tempo_map.tick_to_seconds(tick)) == tick

    def test_rejects_non_positive_resolution(self):
        with pytest.raises(ValueError):
            TempoMap([], 0)


class TestReadMidi:
    def test_notes_are_grouped_by_source_track(self):
        source = read_midi(_two_tempo_midi())

        assert [t.index for t in source.tracks] == [0, 1, 2]
        assert [t.name for t in source.tracks] == [None, "Lead", "Bass"]
        assert source.tracks[0].notes == []
        assert source.note_count == 4
        assert {n.origin for n in source.tracks[1].notes} == {1}
        assert {n.origin for n in source.tracks[2].notes} == {2}

    def test_note_times_follow_the_tempo_map(self):
        source = read_midi(_two_tempo_midi())
        melody = source.tracks[1].notes

        assert [n.pitch for n in melody] == [72, 74, 76]
        assert [n.start for n in melody] == pytest.approx([0.0, 0.5, 2.0])
        assert [n.duration for n in melody] == pytest.approx([0.5, 0.5, 1.0])
        assert [n.velocity for n in melody] == [100, 96, 90]

    def test_global_meta_events_are_collected_with_ticks(self):
        source = read_midi(_two_tempo_midi())

        assert [(e.tick, e.message.tempo) for e in source.tempos] == [
            (0, mido.bpm2tempo(120)),
            (TPB * 4, mido.bpm2tempo(60)),
        ]
        assert [(e.message.numerator, e.message.denominator) for e in source.time_signatures] == [(3, 4)]
        assert [e.message.key for e in source.key_signatures] == ["G"]
        assert [e.tick for e in source.global_events()] == [0, 0, 0, TPB * 4]

    def test_note_on_with_zero_velocity_ends_a_note(self):
        mid = mido.MidiFile(ticks_per_beat=TPB)
        track = mido.MidiTrack()
        track.append(mido.Message("note_on", note=60, velocity=80, time=0))
        track.append(mido.Message("note_on", note=60, velocity=0, time=TPB))
        mid.tracks.append(track)

        (note,) = read_midi(mid).all_notes()
        assert note.duration == pytest.approx(0.5)

    def test_dangling_note_is_closed_at_track_end(self):
        mid = mido.MidiFile(ticks_per_beat=TPB)
        track = mido.MidiTrack()
        track.append(mido.Message("note_on", note=60, velocity=80, time=0))
        track.append(mido.Message("control_change", control=7, value=100, time=TPB * 2))
        mid.tracks.append(track)

        (note,) = read_midi(mid).all_notes()
        assert note.end == pytest.approx(1.0)

    def test_zero_length_note_gets_one_tick(self):
        mid = mido.MidiFile(ticks_per_beat=TPB)
        track = mido.MidiTrack()
        track.append(mido.Message("note_on", note=60, velocity=80, time=0))
        track.append(mido.Message("note_off", note=60, velocity=0, time=0))
        mid.tracks.append(track)

        (note,) = read_midi(mid).all_notes()
        assert note.duration == pytest.approx(0.5 / TPB)

    def test_missing_resolution_falls_back_to_default(self):
        mid = mido.MidiFile(ticks_per_beat=TPB)
        mid.ticks_per_beat = 0
        mid.tracks.append(_build_track([(0, 60, 100, 90)], channel=0))

        assert read_midi(mid).ticks_per_beat == DEFAULT_TICKS_PER_BEAT


class TestOutputMidi:
    def test_layout_is_conductor_plus_three_named_tracks(self):
        source = read_midi(_two_tempo_midi())
        out = build_output_midi(allocate_notes(source.all_notes()), source)

        assert out.type == 1
        assert out.ticks_per_beat == TPB
        assert len(out.tracks) == 4
        names = [next((m.name for m in t if m.type == "track_name"), None) for t in out.tracks[1:]]
        assert names == list(ROLE_NAMES)

    def test_empty_roles_are_still_written(self):
        mid = mido.MidiFile(ticks_per_beat=TPB)
        mid.tracks.append(_build_track([(0, 60, TPB, 90)], channel=0))
        source = read_midi(mid)

        out = build_output_midi(allocate_notes(source.all_notes()), source)
        assert len(out.tracks) == 4
        note_counts = [sum(1 for m in t if m.type == "note_on") for t in out.tracks[1:]]
        assert note_counts == [1, 0, 0]

    def test_round_trip_keeps_meta_and_note_times(self, tmp_path: Path):
        source = read_midi(_two_tempo_midi())
        result = allocate_notes(source.all_notes())
        path = save_midi(build_output_midi(result, source), tmp_path / "nested" / "out.mid")

        assert path.exists()
        reloaded = load_midi(path)
        assert reloaded.ticks_per_beat == TPB
        assert [(e.tick, e.message.tempo) for e in reloaded.tempos] == [
            (e.tick, e.message.tempo) for e in source.tempos
        ]
        assert [e.message.key for e in reloaded.key_signatures] == ["G"]
        assert [t.name for t in reloaded.tracks[1:]] == list(ROLE_NAMES)

        for role_idx, track in enumerate(result.tracks):
            back = reloaded.tracks[role_idx + 1].notes
            assert [n.pitch for n in back] == [n.pitch for n in track.notes]
            assert [n.start for n in back] == pytest.approx([n.start for n in track.notes])
            assert [n.end for n in back] == pytest.approx([n.end for n in track.notes])
            assert [n.velocity for n in back] == [n.velocity for n in track.notes]
