import random
from collections import Counter
from types import SimpleNamespace
from unittest import mock

from django.test import SimpleTestCase

from prize.exceptions import NoStockAvailableError
from prize.selection import select_weighted


def _candidate(prize_id: str, remaining: int) -> SimpleNamespace:
    return SimpleNamespace(id=prize_id, remaining=remaining)


class SelectWeightedTests(SimpleTestCase):
    def setUp(self):
        self.candidates = [
            _candidate("A", 1),
            _candidate("B", 2),
            _candidate("C", 3),
        ]

    def test_empty_snapshot_raises(self):
        with self.assertRaises(NoStockAvailableError):
            select_weighted([])

    def test_snapshot_without_stock_raises(self):
        with self.assertRaises(NoStockAvailableError):
            select_weighted([_candidate("A", 0), _candidate("B", 0)])

    def test_walks_prefix_sums(self):
        rng = mock.Mock()
        expected = {0: "A", 1: "B", 2: "B", 3: "C", 4: "C", 5: "C"}
        for point, prize_id in expected.items():
            rng.randrange.return_value = point
            self.assertEqual(select_weighted(self.candidates, rng).id, prize_id)
        rng.randrange.assert_called_with(6)

    def test_zero_weight_is_never_selected(self):
        candidates = [_candidate("A", 0), _candidate("B", 4), _candidate("C", 0)]
        rng = random.Random(3)
        picks = {select_weighted(candidates, rng).id for _ in range(200)}
        self.assertEqual(picks, {"B"})

    def test_same_seed_gives_same_sequence(self):
        first_rng = random.Random(2024)
        second_rng = random.Random(2024)
        first = [select_weighted(self.candidates, first_rng).id for _ in range(30)]
        second = [select_weighted(self.candidates, second_rng).id for _ in range(30)]
        self.assertEqual(first, second)

    def test_falls_back_to_module_random(self):
        with mock.patch("prize.selection.random.randrange", return_value=5) as randrange:
            picked = select_weighted(self.candidates)
        self.assertEqual(picked.id, "C")
        randrange.assert_called_once_with(6)

    def test_frequency_converges_to_remaining_share(self):
        rng = random.Random(12345)
        trials = 30000
        counts = Counter(select_weighted(self.candidates, rng).id for _ in range(trials))
        for candidate in self.candidates:
            share = counts[candidate.id] / trials
            self.assertAlmostEqual(share, candidate.remaining / 6, delta=0.02)

    def test_does_not_mutate_snapshot(self):
        select_weighted(self.candidates, random.Random(1))
        self.assertEqual([c.remaining for c in self.candidates], [1, 2, 3])
