"""Tests for synthetic data generation."""

from __future__ import annotations

import numpy as np
import pytest

from mlekit.exceptions import ConfigurationError
from mlekit.simulate import DEFAULT_PRICE_LEVELS, simulate_choice_data, simulate_count_data


class TestSimulateCounts:
    def test_shape_and_columns(self):
        frame = simulate_count_data(200, (0.5, 0.2, 0.1, -0.1), seed=1)
        assert list(frame.columns) == ["x1", "x2", "x3", "y"]
        assert len(frame) == 200
        assert (frame["y"] >= 0).all()
        assert frame["y"].dtype == np.int64

    def test_seed_reproducible(self):
        a = simulate_count_data(50, seed=3)
        b = simulate_count_data(50, seed=3)
        c = simulate_count_data(50, seed=4)
        assert a.equals(b)
        assert not a.equals(c)

    def test_intercept_only(self):
        frame = simulate_count_data(5000, (np.log(3.0),), seed=0)
        assert list(frame.columns) == ["y"]
        assert frame["y"].mean() == pytest.approx(3.0, rel=0.05)

    def test_custom_names(self):
        frame = simulate_count_data(10, (1.0, 0.2), covariate_names=["age"], seed=0)
        assert list(frame.columns) == ["age", "y"]

    def test_invalid_inputs_raise(self):
        with pytest.raises(ConfigurationError):
            simulate_count_data(0)
        with pytest.raises(ConfigurationError):
            simulate_count_data(10, (1.0, 0.2), covariate_names=["a", "b"])


class TestSimulateChoices:
    def test_layout(self):
        frame = simulate_choice_data(4, 5, 3, seed=0)
        assert list(frame.columns) == ["resp", "task", "alt", "brand_N", "brand_P", "ad", "price", "choice"]
        assert len(frame) == 4 * 5 * 3
        assert frame.groupby(["resp", "task"])["choice"].sum().eq(1).all()
        assert set(frame["alt"]) == {1, 2, 3}

    def test_attribute_levels(self):
        frame = simulate_choice_data(10, 4, 2, seed=0)
        assert set(frame["ad"]).issubset({0, 1})
        assert set(frame["price"]).issubset(set(DEFAULT_PRICE_LEVELS))

    def test_choice_shares_follow_utilities(self):
        frame = simulate_choice_data(300, 10, 2, {"good": 2.0}, continuous=(), seed=5)
        differs = frame.groupby(["resp", "task"])["good"].transform("nunique") == 2
        subset = frame[differs & (frame["good"] == 1)]
        # P(choose the good alternative) = e^2 / (1 + e^2) ~ 0.88
        assert subset["choice"].mean() == pytest.approx(np.exp(2.0) / (1.0 + np.exp(2.0)), abs=0.04)

    def test_seed_reproducible(self):
        assert simulate_choice_data(3, 2, 3, seed=9).equals(simulate_choice_data(3, 2, 3, seed=9))

    def test_invalid_inputs_raise(self):
        with pytest.raises(ConfigurationError, match="n_alternatives"):
            simulate_choice_data(2, 2, 1)
        with pytest.raises(ConfigurationError, match="at least one attribute"):
            simulate_choice_data(2, 2, 2, {})
