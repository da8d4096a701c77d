"""Unit tests for the sliding-window pattern matcher."""

import numpy as np
import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.pattern_matcher import (
    PatternMatcher, find_pattern_matches, pattern_similarity,
)


@pytest.fixture
def random_walk():
    rng = np.random.default_rng(42)
    return (100 + rng.normal(size=600).cumsum()).tolist()


class TestRepeatedPattern:
    """Exact repeats of [0, 1, 0] inside a short series."""

    HISTORY = [0, 1, 0, 0, 1, 0, 0, 1, 0]

    def _matches(self, **overrides):
        params = dict(
            pattern=[0, 1, 0],
            historical_data=self.HISTORY,
            window_size=3,
            threshold=0.9,
            max_matches=5,
            continuation_length=2,
        )
        params.update(overrides)
        return find_pattern_matches(**params)

    def test_exact_repeats_score_one(self):
        matches = self._matches()
        assert [m.start_index for m in matches] == [0, 3, 6]
        assert all(m.similarity == 1.0 for m in matches)

    def test_continuations_truncated_at_tail(self):
        matches = self._matches()
        assert matches[0].continuation == [0, 1]
        assert matches[1].continuation == [0, 1]
        assert matches[2].continuation == []
        assert matches[2].continuation_start_index == 9

    def test_window_data_and_indices(self):
        first = self._matches()[0]
        assert first.data == [0, 1, 0]
        assert first.end_index == 2
        assert (first.continuation_start_index, first.continuation_end_index) == (3, 4)

    def test_max_matches_keeps_scan_order_for_ties(self):
        matches = self._matches(max_matches=2)
        assert [m.start_index for m in matches] == [0, 3]


class TestMatchWellFormedness:

    def test_invariants_on_random_walk(self, random_walk):
        window = 30
        pattern = random_walk[100:100 + window]
        threshold = 0.6

        matches = find_pattern_matches(pattern, random_walk, window, threshold, 20, 15)

        assert matches
        for m in matches:
            assert m.end_index == m.start_index + window - 1
            assert threshold <= m.similarity <= 1.0
            assert len(m.data) == window
            assert len(m.continuation) <= 15
        similarities = [m.similarity for m in matches]
        assert similarities == sorted(similarities, reverse=True)
        assert len(matches) <= 20

    def test_source_window_ranks_first(self, random_walk):
        pattern = random_walk[250:290]
        matches = find_pattern_matches(pattern, random_walk, 40, 0.5, 5, 10)
        assert matches[0].start_index == 250
        assert matches[0].similarity == 1.0

    def test_long_pattern_is_resampled(self, random_walk):
        """Patterns over 50 points compare on 50 resampled points."""
        pattern = random_walk[300:420]
        matches = find_pattern_matches(pattern, random_walk, 120, 0.99, 3, 0)
        assert matches[0].start_index == 300

    def test_pattern_and_window_lengths_may_differ(self):
        """A 6-point window resampled to 3 points equals [0, 1, 0] after scaling."""
        matches = find_pattern_matches([0, 1, 0], [0, 0.5, 1, 1, 0.5, 0], 6, 0.99, 5, 0)
        assert len(matches) == 1
        assert matches[0].similarity == 1.0

    def test_deterministic(self, random_walk):
        pattern = random_walk[10:45]
        first = find_pattern_matches(pattern, random_walk, 35, 0.7, 10, 20)
        second = find_pattern_matches(pattern, random_walk, 35, 0.7, 10, 20)
        assert first == second


class TestThreshold:

    def test_threshold_applies_to_unrounded_score(self):
        """0.89996 rounds to 0.9 but stays below a 0.9 threshold."""
        matcher = PatternMatcher([0, 1, 0])
        matcher.score_windows = lambda rows: np.array([0.89996, 0.95, 0.90004])

        matches = matcher.find_matches([0, 1, 0, 1, 0], 3, threshold=0.9, max_matches=5, continuation_length=0)

        assert [m.start_index for m in matches] == [1, 2]
        assert [m.similarity for m in matches] == [0.95, 0.9]

    def test_reported_score_never_below_threshold(self):
        matcher = PatternMatcher([0, 1, 0])
        matcher.score_windows = lambda rows: np.array([0.123441])

        matches = matcher.find_matches([0, 1, 0], 3, threshold=0.12344, max_matches=5, continuation_length=0)

        assert matches[0].similarity == 0.12344


class TestEdgeCases:

    def test_empty_pattern(self):
        assert find_pattern_matches([], [1, 2, 3, 4], 2) == []

    def test_history_shorter_than_window(self):
        assert find_pattern_matches([1, 2, 3], [1, 2], 3) == []

    def test_non_positive_window(self):
        assert find_pattern_matches([1, 2, 3], [1, 2, 3, 4], 0) == []

    def test_zero_max_matches(self, random_walk):
        assert find_pattern_matches(random_walk[:20], random_walk, 20, 0.0, 0, 5) == []


class TestCompositeScore:

    def test_identical_shape(self):
        assert pattern_similarity([1, 3, 2, 5], [10, 30, 20, 50]) == pytest.approx(1.0)

    def test_mirrored_shape_keeps_correlation_terms(self):
        """Inverted window: shape 0, |corr| 1, |cos| 1, trend 0 -> 0.5."""
        assert pattern_similarity([0, 1, 0], [1, 0, 1]) == pytest.approx(0.5)

    def test_single_window_matches_scan_score(self, random_walk):
        pattern = random_walk[:25]
        matcher = PatternMatcher(pattern)
        matches = matcher.find_matches(random_walk, 25, 0.0, 1000, 0)
        by_start = {m.start_index: m.similarity for m in matches}
        window = random_walk[77:102]
        assert by_start[77] == round(matcher.similarity(window), 4)

    def test_flat_window_scores_are_finite(self):
        score = pattern_similarity([1, 2, 3], [4, 4, 4])
        assert np.isfinite(score)
        assert 0.0 <= score <= 1.0
