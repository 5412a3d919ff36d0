from typing import Sequence

from exceptions import InvalidDayIndex, NoDaysDefined


class ProgramSequencer:
    """Cyclic day sequencing for multi-day programs.

    A program keeps a ``current_day_index`` pointing at the next day to
    perform. The pointer only moves when a day is completed, and always
    relative to the day that was actually performed, wrapping to ``0``
    after the last day. Picking a different day to perform never touches
    the pointer.
    """

    @staticmethod
    def current_index(pointer: int, day_count: int) -> int:
        """Return ``pointer`` clamped into ``[0, day_count)``."""
        if day_count <= 0:
            raise NoDaysDefined()
        return pointer % day_count

    @classmethod
    def current_day(cls, program: dict, days: Sequence[dict]) -> dict:
        try:
            index = cls.current_index(program["current_day_index"], len(days))
        except NoDaysDefined:
            raise NoDaysDefined(program.get("id"))
        return days[index]

    @staticmethod
    def select_day(days: Sequence[dict], day_index: int) -> dict:
        if not 0 <= day_index < len(days):
            raise InvalidDayIndex(day_index, len(days))
        return days[day_index]

    @staticmethod
    def next_index(day_index: int, day_count: int) -> int:
        """Return the pointer value after completing ``day_index``."""
        if day_count <= 0:
            raise NoDaysDefined()
        if not 0 <= day_index < day_count:
            raise InvalidDayIndex(day_index, day_count)
        return (day_index + 1) % day_count
