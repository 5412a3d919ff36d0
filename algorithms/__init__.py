from .formatters import (
    format_clock,
    format_duration,
    format_elapsed,
    parse_target_reps,
)
from .program_sequencer import ProgramSequencer
from .weight_converter import WeightConverter

__all__ = [
    "ProgramSequencer",
    "WeightConverter",
    "format_clock",
    "format_duration",
    "format_elapsed",
    "parse_target_reps",
]
