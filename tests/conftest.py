"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from mlekit.model import ChoiceData, CountData
from mlekit.simulate import simulate_choice_data, simulate_count_data

POISSON_BETA = np.array([1.0, 0.5, -0.3])
MNL_BETA = {"brand_N": 1.0, "brand_P": 0.5, "ad": -0.8, "price": -0.1}
MNL_ATTRIBUTES = list(MNL_BETA)


@pytest.fixture
def count_frame():
    """500 Poisson records with known coefficients (1.0, 0.5, -0.3)."""
    return simulate_count_data(500, POISSON_BETA, seed=2024)


@pytest.fixture
def count_data(count_frame) -> CountData:
    return CountData.from_frame(count_frame, "y", ["x1", "x2"])


@pytest.fixture
def choice_frame():
    """50 respondents x 8 tasks x 3 alternatives of simulated conjoint choices."""
    return simulate_choice_data(50, 8, 3, MNL_BETA, seed=11)


@pytest.fixture
def choice_data(choice_frame) -> ChoiceData:
    return ChoiceData.from_frame(choice_frame, "choice", MNL_ATTRIBUTES, ["resp", "task"])
