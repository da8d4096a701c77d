"""Unit tests for the similarity metric library."""

import numpy as np
import pytest

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.metrics import cosine, pearson, shape_similarity, trend_similarity


class TestPearson:

    def test_perfect_positive(self):
        assert pearson([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)

    def test_invalid_input_returns_zero(self):
        """Empty, unequal or constant input is the zero sentinel, not an error."""
        assert pearson([], []) == 0.0
        assert pearson([1, 2, 3], [1, 2]) == 0.0
        assert pearson([3, 3, 3], [1, 2, 3]) == 0.0
        assert pearson([0.1] * 7, [0.1] * 7) == 0.0

    def test_symmetric(self):
        rng = np.random.default_rng(3)
        x, y = rng.normal(size=40), rng.normal(size=40)
        assert pearson(x, y) == pytest.approx(pearson(y, x), abs=1e-15)

    def test_bounded(self):
        rng = np.random.default_rng(5)
        for _ in range(10):
            value = pearson(rng.normal(size=30), rng.normal(size=30))
            assert -1.0 <= value <= 1.0


class TestCosine:

    def test_orthogonal(self):
        assert cosine([1, 0], [0, 1]) == 0.0

    def test_parallel(self):
        assert cosine([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)

    def test_zero_magnitude_returns_zero(self):
        assert cosine([0, 0, 0], [1, 2, 3]) == 0.0

    def test_invalid_input_returns_zero(self):
        assert cosine([], []) == 0.0
        assert cosine([1, 2], [1, 2, 3]) == 0.0

    def test_symmetric(self):
        rng = np.random.default_rng(9)
        x, y = rng.normal(size=25), rng.normal(size=25)
        assert cosine(x, y) == pytest.approx(cosine(y, x), abs=1e-15)


class TestShapeSimilarity:

    def test_identical(self):
        assert shape_similarity([0, 0.5, 1], [0, 0.5, 1]) == 1.0

    def test_mean_absolute_distance(self):
        assert shape_similarity([0, 1], [0.5, 0.5]) == pytest.approx(0.5)

    def test_floored_at_zero(self):
        assert shape_similarity([0, 0], [1, 1]) == 0.0

    def test_unequal_lengths(self):
        assert shape_similarity([0, 1], [0, 1, 0]) == 0.0


class TestTrendSimilarity:

    def test_same_directions(self):
        assert trend_similarity([1, 2, 3], [5, 6, 7]) == 1.0

    def test_opposite_directions(self):
        assert trend_similarity([1, 2, 1], [1, 0, 1]) == 0.0

    def test_flat_steps_count_as_a_direction(self):
        """Directions [+, 0, +] vs [+, +, +] agree on 2 of 3 steps."""
        assert trend_similarity([1, 2, 2, 3], [1, 2, 3, 4]) == pytest.approx(2 / 3)

    def test_requires_three_points(self):
        assert trend_similarity([1, 2], [1, 2]) == 0.0

    def test_unequal_lengths(self):
        assert trend_similarity([1, 2, 3], [1, 2, 3, 4]) == 0.0
