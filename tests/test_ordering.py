import random
import unittest
from datetime import datetime, timedelta

from triage.backend.models import Email, Priority
from triage.backend.ordering import order_items, ordered_ids, split_tiers

BASE_TS = datetime(2025, 8, 19, 0, 58, 0)


def _email(email_id, priority, minute):
    return Email(id=email_id, priority=Priority(priority), received_at=BASE_TS + timedelta(minutes=minute))


class PriorityOrderingTests(unittest.TestCase):
    def test_urgent_then_earliest_first(self):
        items = [
            _email("A", "normal", 2),
            _email("B", "urgent", 1),
            _email("C", "urgent", 0),
        ]
        self.assertEqual(ordered_ids(items), ["C", "B", "A"])

    def test_empty_input(self):
        self.assertEqual(order_items([]), [])
        self.assertEqual(split_tiers([]), ([], []))

    def test_identical_timestamps_keep_input_order(self):
        items = [
            _email("n-first", "normal", 5),
            _email("u-first", "urgent", 5),
            _email("n-second", "normal", 5),
            _email("u-second", "urgent", 5),
        ]
        self.assertEqual(ordered_ids(items), ["u-first", "u-second", "n-first", "n-second"])

    def test_does_not_mutate_input(self):
        items = [_email("b", "normal", 1), _email("a", "urgent", 0)]
        before = list(items)
        order_items(items)
        self.assertEqual(items, before)

    def test_accepts_any_iterable(self):
        items = (e for e in [_email("x", "normal", 1), _email("y", "urgent", 2)])
        self.assertEqual(ordered_ids(items), ["y", "x"])

    def test_tier_and_time_properties_on_shuffled_sets(self):
        rng = random.Random(1234)
        for _ in range(50):
            items = [
                _email(f"e{i}", rng.choice(["urgent", "normal"]), rng.randint(0, 20))
                for i in range(rng.randint(0, 25))
            ]
            ordered = order_items(items)
            self.assertEqual(sorted(e.id for e in ordered), sorted(e.id for e in items))

            tiers = [e.priority for e in ordered]
            if Priority.NORMAL in tiers:
                first_normal = tiers.index(Priority.NORMAL)
                self.assertNotIn(Priority.URGENT, tiers[first_normal:])

            for earlier, later in zip(ordered, ordered[1:]):
                if earlier.priority is later.priority:
                    self.assertLessEqual(earlier.received_at, later.received_at)

    def test_split_tiers(self):
        items = [
            _email("n1", "normal", 3),
            _email("u2", "urgent", 4),
            _email("u1", "urgent", 2),
            _email("n0", "normal", 0),
        ]
        urgent, normal = split_tiers(items)
        self.assertEqual([e.id for e in urgent], ["u1", "u2"])
        self.assertEqual([e.id for e in normal], ["n0", "n1"])


if __name__ == "__main__":
    unittest.main()
