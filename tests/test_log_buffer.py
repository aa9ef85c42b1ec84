"""Tests for bounded per-bot console history."""

import unittest

from botpanel.supervisor.log_buffer import LOG_BUFFER_SIZE, LogRingBuffer


class LogRingBufferTests(unittest.TestCase):
    """Validate capacity bound, eviction order and snapshot isolation."""

    def test_unknown_bot_has_empty_snapshot(self) -> None:
        buffer = LogRingBuffer()
        self.assertEqual(buffer.snapshot("ghost"), [])
        self.assertEqual(buffer.bot_ids(), [])

    def test_default_capacity_is_500(self) -> None:
        self.assertEqual(LogRingBuffer().capacity, LOG_BUFFER_SIZE)
        self.assertEqual(LOG_BUFFER_SIZE, 500)

    def test_501_appends_evict_only_the_first_line(self) -> None:
        buffer = LogRingBuffer()
        for i in range(1, 502):
            buffer.append("alpha", f"line {i}\n")
        snapshot = buffer.snapshot("alpha")
        self.assertEqual(len(snapshot), 500)
        self.assertNotIn("line 1\n", snapshot)
        self.assertEqual(snapshot, [f"line {i}\n" for i in range(2, 502)])

    def test_length_never_exceeds_capacity(self) -> None:
        buffer = LogRingBuffer(capacity=3)
        for i in range(10):
            buffer.append("alpha", str(i))
            self.assertLessEqual(len(buffer.snapshot("alpha")), 3)
        self.assertEqual(buffer.snapshot("alpha"), ["7", "8", "9"])

    def test_snapshot_is_a_copy(self) -> None:
        buffer = LogRingBuffer()
        buffer.append("alpha", "one")
        snapshot = buffer.snapshot("alpha")
        snapshot.append("mutated")
        buffer.append("alpha", "two")
        self.assertEqual(snapshot, ["one", "mutated"])
        self.assertEqual(buffer.snapshot("alpha"), ["one", "two"])

    def test_bots_are_isolated(self) -> None:
        buffer = LogRingBuffer(capacity=2)
        buffer.append("alpha", "a1")
        buffer.append("beta", "b1")
        buffer.append("alpha", "a2")
        buffer.append("alpha", "a3")
        self.assertEqual(buffer.snapshot("alpha"), ["a2", "a3"])
        self.assertEqual(buffer.snapshot("beta"), ["b1"])
        self.assertEqual(buffer.bot_ids(), ["alpha", "beta"])

    def test_rejects_non_positive_capacity(self) -> None:
        with self.assertRaises(ValueError):
            LogRingBuffer(capacity=0)


if __name__ == "__main__":
    unittest.main()
