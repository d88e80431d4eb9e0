"""Fold multi-track MIDI performances onto three non-overlapping tracks."""

from .allocator import (  # noqa: F401
    DROP,
    EVENT_KINDS,
    MIN_TRUNCATED_DURATION,
    TRANSFER,
    TRUNCATE_EXISTING,
    TRUNCATE_INCOMING,
    AllocationEvent,
    AllocationResult,
    AllocatorConfig,
    OutputTrack,
    TrackAllocator,
    allocate_notes,
)
from .convert import (  # noqa: F401
    MIDI_EXTENSIONS,
    ConversionReport,
    InputValidationError,
    convert_file,
    validate_input_path,
)
from .midi_io import (  # noqa: F401
    DEFAULT_TICKS_PER_BEAT,
    GlobalEvent,
    SourceMidi,
    SourceTrack,
    TempoMap,
    build_output_midi,
    load_midi,
    read_midi,
    save_midi,
)
from .notes import EPSILON, AllocatedNote, NoteEvent, global_order, overlaps  # noqa: F401
from .roles import ROLE_NAMES, TrackRole  # noqa: F401
