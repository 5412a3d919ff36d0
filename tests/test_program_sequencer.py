import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from algorithms import ProgramSequencer
from exceptions import InvalidDayIndex, NoDaysDefined


def _days(*names):
    return [
        {"id": i + 10, "program_id": 1, "day_index": i, "name": n, "exercises": []}
        for i, n in enumerate(names)
    ]


class ProgramSequencerTest(unittest.TestCase):
    def test_current_index_wraps_pointer(self) -> None:
        self.assertEqual(ProgramSequencer.current_index(0, 3), 0)
        self.assertEqual(ProgramSequencer.current_index(2, 3), 2)
        self.assertEqual(ProgramSequencer.current_index(5, 3), 2)

    def test_current_day_uses_pointer(self) -> None:
        days = _days("Push", "Pull", "Legs")
        program = {"id": 1, "current_day_index": 1}
        self.assertEqual(ProgramSequencer.current_day(program, days)["name"], "Pull")

    def test_zero_days(self) -> None:
        with self.assertRaises(NoDaysDefined):
            ProgramSequencer.current_index(0, 0)
        with self.assertRaises(NoDaysDefined) as ctx:
            ProgramSequencer.current_day({"id": 7, "current_day_index": 0}, [])
        self.assertEqual(ctx.exception.program_id, 7)
        with self.assertRaises(NoDaysDefined):
            ProgramSequencer.next_index(0, 0)

    def test_select_day_bounds(self) -> None:
        days = _days("Upper", "Lower")
        self.assertEqual(ProgramSequencer.select_day(days, 1)["name"], "Lower")
        for bad in (-1, 2, 10):
            with self.assertRaises(InvalidDayIndex):
                ProgramSequencer.select_day(days, bad)

    def test_next_index_wraps_after_last_day(self) -> None:
        self.assertEqual(ProgramSequencer.next_index(0, 3), 1)
        self.assertEqual(ProgramSequencer.next_index(2, 3), 0)
        self.assertEqual(ProgramSequencer.next_index(0, 1), 0)
        with self.assertRaises(InvalidDayIndex):
            ProgramSequencer.next_index(3, 3)

    def test_cycle_returns_to_start(self) -> None:
        for count in (1, 2, 3, 5, 7):
            pointer = 0
            seen = []
            for _ in range(count):
                seen.append(ProgramSequencer.current_index(pointer, count))
                pointer = ProgramSequencer.next_index(pointer, count)
            self.assertEqual(pointer, 0)
            self.assertEqual(seen, list(range(count)))

    def test_invalid_index_message(self) -> None:
        err = InvalidDayIndex(4, 2)
        self.assertIn("4", str(err))
        self.assertIsInstance(err, ValueError)


if __name__ == "__main__":
    unittest.main()
