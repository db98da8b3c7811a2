from __future__ import annotations

import queue
import threading
import unittest

from partkit.errors import Cancelled
from partkit.progress import CancelToken, ProgressEvent, ProgressReporter


class ProgressReporterTests(unittest.TestCase):
    def test_subscriber_sees_events_in_order(self):
        rep = ProgressReporter()
        sub = rep.subscribe()
        rep.emit("splitting", 0, 30, 0, 3)
        rep.emit("splitting", 10, 30, 1, 3)
        rep.emit("splitting", 30, 30, 3, 3)
        rep.close()
        events = list(sub)
        self.assertEqual([e.processed_bytes for e in events], [0, 10, 30])
        self.assertEqual(rep.latest, events[-1])

    def test_late_subscriber_misses_earlier_events(self):
        rep = ProgressReporter()
        rep.emit("hashing", 5, 10)
        sub = rep.subscribe()
        self.assertEqual(sub.drain(), [])
        self.assertEqual(rep.latest.processed_bytes, 5)

    def test_rejects_backwards_progress_within_a_phase(self):
        rep = ProgressReporter()
        rep.emit("merging", 10, 100)
        with self.assertRaises(ValueError):
            rep.emit("merging", 5, 100)
        # a new phase starts from zero again
        rep.emit("extracting", 0, 100)

    def test_begin_starts_a_new_operation(self):
        rep = ProgressReporter()
        rep.emit("merging", 30, 30)
        rep.begin()
        self.assertIsNone(rep.latest)
        rep.emit("merging", 0, 30)
        self.assertEqual(rep.latest.processed_bytes, 0)

    def test_rejects_part_index_out_of_range(self):
        rep = ProgressReporter()
        with self.assertRaises(ValueError):
            rep.emit("splitting", 0, 10, 4, 3)
        with self.assertRaises(ValueError):
            rep.emit("splitting", 0, 10, -1, 3)

    def test_closed_reporter(self):
        rep = ProgressReporter()
        rep.close()
        with self.assertRaises(ValueError):
            rep.emit("zipping", 0, 1)
        self.assertIsNone(rep.subscribe().get(timeout=0.1))

    def test_get_times_out_while_open(self):
        rep = ProgressReporter()
        sub = rep.subscribe()
        with self.assertRaises(queue.Empty):
            sub.get(timeout=0.05)

    def test_unsubscribe_ends_iteration(self):
        rep = ProgressReporter()
        sub = rep.subscribe()
        rep.emit("zipping", 1, 2)
        sub.unsubscribe()
        rep.emit("zipping", 2, 2)
        self.assertEqual([e.processed_bytes for e in sub], [1])

    def test_listener_runs_for_each_event(self):
        rep = ProgressReporter()
        seen = []
        rep.add_listener(seen.append)
        rep.emit("unzipping", 1, 3, 1, 3, "a")
        rep.emit("unzipping", 3, 3, 3, 3, "c")
        self.assertEqual([e.message for e in seen], ["a", "c"])
        self.assertIsInstance(seen[0], ProgressEvent)

    def test_cross_thread_delivery_keeps_order(self):
        rep = ProgressReporter()
        subs = [rep.subscribe() for _ in range(3)]
        total = 500

        def _writer():
            for i in range(total + 1):
                rep.emit("splitting", i, total)
            rep.close()

        results = [[] for _ in subs]

        def _reader(sub, out):
            for ev in sub:
                out.append(ev.processed_bytes)

        readers = [threading.Thread(target=_reader, args=(s, r)) for s, r in zip(subs, results)]
        for t in readers:
            t.start()
        writer = threading.Thread(target=_writer)
        writer.start()
        writer.join(timeout=10)
        for t in readers:
            t.join(timeout=10)
        for r in results:
            self.assertEqual(r, list(range(total + 1)))

    def test_event_dict_shape(self):
        ev = ProgressEvent("hashing", 1, 2, 1, 2, "x")
        self.assertEqual(
            ev.to_dict(),
            {"phase": "hashing", "processedBytes": 1, "totalBytes": 2, "partIndex": 1, "partTotal": 2, "message": "x"},
        )


class CancelTokenTests(unittest.TestCase):
    def test_check_raises_after_cancel(self):
        tok = CancelToken()
        tok.check(phase="splitting")
        self.assertFalse(tok.cancelled)
        tok.cancel()
        self.assertTrue(tok.cancelled)
        with self.assertRaises(Cancelled) as ctx:
            tok.check(phase="splitting", part_index=2)
        self.assertEqual(ctx.exception.phase, "splitting")
        self.assertEqual(ctx.exception.part_index, 2)


if __name__ == "__main__":
    unittest.main()
