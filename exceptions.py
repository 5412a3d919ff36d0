class ProgramError(Exception):
    """Base class for program sequencing errors."""


class ProgramNotFound(ProgramError, ValueError):
    """Raised when a program id does not exist or no program is active."""

    def __init__(self, program_id: int | None = None) -> None:
        if program_id is None:
            msg = "no active program"
        else:
            msg = f"program {program_id} not found"
        super().__init__(msg)
        self.program_id = program_id


class NoDaysDefined(ProgramError, ValueError):
    """Raised when a program without days is started or advanced."""

    def __init__(self, program_id: int | None = None) -> None:
        if program_id is None:
            msg = "program has no days"
        else:
            msg = f"program {program_id} has no days"
        super().__init__(msg)
        self.program_id = program_id


class InvalidDayIndex(ProgramError, ValueError):
    """Raised when a day index is outside ``[0, day_count)``."""

    def __init__(self, day_index: int, day_count: int) -> None:
        super().__init__(
            f"day index {day_index} out of range for {day_count} day(s)"
        )
        self.day_index = day_index
        self.day_count = day_count


class StorageError(ProgramError, RuntimeError):
    """Wraps a failure of the underlying database."""
