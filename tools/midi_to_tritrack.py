#!/usr/bin/env python3
"""Convert any MIDI file into a three-track file (Main Theme / Chord / Base).

Examples
--------
    python tools/midi_to_tritrack.py -i song.mid -o out/song_3track.mid
    python tools/midi_to_tritrack.py -i song.mid -o out.mid --verbose
    python tools/midi_to_tritrack.py -i song.mid -o out.mid --bass-lowest
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tritrack.allocator import AllocatorConfig
from tritrack.convert import ConversionReport, convert_file
from tritrack.summary import allocation_rows, describe_event, format_table, track_counts


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert MIDI into a 3-track file (Main Theme, Chord, Base)",
    )
    parser.add_argument(
        "-i",
        "--input",
        required=True,
        help="Input MIDI file (.mid or .midi)",
    )
    parser.add_argument(
        "-o",
        "--output",
        required=True,
        help="Output MIDI path",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show per-note transfers, truncations and drops plus a note table",
    )
    parser.add_argument(
        "--bass-lowest",
        action="store_true",
        help="Suggest the Base track for the lowest pitch at each onset",
    )
    return parser


def _report(report: ConversionReport, verbose: bool) -> None:
    result = report.result
    if not verbose:
        print("conversion complete")
        return

    print(f"Loaded MIDI: {len(report.source.tracks)} source track(s), {report.source.note_count} note(s)")
    for event in result.events:
        print(describe_event(event), file=sys.stderr)

    rows = allocation_rows(result)
    if rows:
        print(format_table(rows))
    print()
    for name, count in track_counts(result).items():
        print(f"  {name:<10}: {count} note(s)")
    print(
        f"  placed={result.placed_count}/{result.input_count} "
        f"truncated={result.truncated_count} dropped={len(result.dropped)}"
    )
    print("Conversion succeeded")
    print(f"Output file: {report.output_path}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    config = AllocatorConfig(bass_for_lowest=args.bass_lowest)

    try:
        report = convert_file(args.input, args.output, config)
    except Exception as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    _report(report, args.verbose)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
