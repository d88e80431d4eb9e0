"""End-to-end conversion: validate, load, allocate, write."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .allocator import AllocationResult, AllocatorConfig, TrackAllocator
from .midi_io import SourceMidi, build_output_midi, load_midi, save_midi

MIDI_EXTENSIONS = (".mid", ".midi")


class InputValidationError(ValueError):
    """The input path cannot be converted (wrong extension, unreadable)."""


@dataclass(frozen=True)
class ConversionReport:
    source: SourceMidi
    result: AllocationResult
    output_path: Path


def validate_input_path(path: Union[str, Path]) -> Path:
    text = str(path)
    if not text.endswith(MIDI_EXTENSIONS):
        raise InputValidationError(f"input file must be .mid or .midi: {text}")
    resolved = Path(text).expanduser().resolve()
    if not resolved.is_file() or not os.access(resolved, os.R_OK):
        raise InputValidationError(f"cannot access input file: {text}")
    return resolved


def convert_file(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    config: Optional[AllocatorConfig] = None,
) -> ConversionReport:
    """Convert ``input_path`` into a three-track MIDI file at ``output_path``.

    Raises ``InputValidationError`` before touching the file when the path
    is unusable; load/save failures propagate unchanged.
    """

    resolved = validate_input_path(input_path)
    source = load_midi(resolved)
    result = TrackAllocator(config).allocate(source.all_notes())
    written = save_midi(build_output_midi(result, source), output_path)
    return ConversionReport(source=source, result=result, output_path=written)
