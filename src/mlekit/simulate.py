"""
Synthetic datasets with known coefficients.

Count data follows ``y ~ Poisson(exp(X @ beta))``. Choice data follows the
random-utility model: each alternative's utility is ``X @ beta`` plus a
Gumbel error and the highest-utility alternative is chosen, which yields
multinomial-logit choice probabilities.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import numpy as np
import pandas as pd

from mlekit.exceptions import ConfigurationError

DEFAULT_PRICE_LEVELS = (8.0, 12.0, 16.0, 20.0, 24.0, 28.0, 32.0)


def simulate_count_data(
    n: int = 500,
    beta: Sequence[float] = (1.0, 0.5, -0.3),
    *,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    covariate_names: Sequence[str] | None = None,
) -> pd.DataFrame:
    """
    Simulate Poisson counts with standard-normal covariates.

    ``beta[0]`` is the intercept; ``beta[1:]`` multiply covariates named
    ``x1, x2, ...`` unless *covariate_names* is given.

    Returns:
        DataFrame with the covariate columns and the count column ``y``.
    """
    if n < 1:
        raise ConfigurationError(f"n must be >= 1, got {n}")
    coef = np.asarray(beta, dtype=np.float64).reshape(-1)
    if coef.shape[0] < 1:
        raise ConfigurationError("beta must contain at least the intercept")

    k = coef.shape[0] - 1
    names = list(covariate_names) if covariate_names is not None else [f"x{i + 1}" for i in range(k)]
    if len(names) != k:
        raise ConfigurationError(f"covariate_names must have {k} entries, got {len(names)}")

    rng = rng if rng is not None else np.random.default_rng(seed)
    covariates = rng.standard_normal(size=(n, k))
    rates = np.exp(coef[0] + covariates @ coef[1:])
    counts = rng.poisson(rates)

    frame = pd.DataFrame(covariates, columns=names)
    frame["y"] = counts.astype(np.int64)
    return frame


def simulate_choice_data(
    n_respondents: int = 100,
    n_tasks: int = 10,
    n_alternatives: int = 3,
    beta: Mapping[str, float] | None = None,
    *,
    continuous: Sequence[str] = ("price",),
    price_levels: Sequence[float] = DEFAULT_PRICE_LEVELS,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
) -> pd.DataFrame:
    """
    Simulate a long-format conjoint dataset.

    Every attribute named in *beta* is a 0/1 indicator drawn with
    probability 0.5, except those listed in *continuous*, which are drawn
    uniformly from *price_levels*.

    Returns:
        DataFrame with columns ``resp``, ``task``, ``alt``, one column per
        attribute, and the 0/1 ``choice`` column.
    """
    if beta is None:
        beta = {"brand_N": 1.0, "brand_P": 0.5, "ad": -0.8, "price": -0.1}
    if n_respondents < 1 or n_tasks < 1:
        raise ConfigurationError("n_respondents and n_tasks must be >= 1")
    if n_alternatives < 2:
        raise ConfigurationError(f"n_alternatives must be >= 2, got {n_alternatives}")
    if not beta:
        raise ConfigurationError("beta must name at least one attribute")

    rng = rng if rng is not None else np.random.default_rng(seed)
    n_rows = n_respondents * n_tasks * n_alternatives
    names = list(beta)
    coef = np.array([float(beta[name]) for name in names], dtype=np.float64)

    levels = np.asarray(price_levels, dtype=np.float64)
    X = np.empty((n_rows, len(names)), dtype=np.float64)
    for j, name in enumerate(names):
        if name in continuous:
            X[:, j] = rng.choice(levels, size=n_rows)
        else:
            X[:, j] = rng.integers(0, 2, size=n_rows)

    utility = (X @ coef + rng.gumbel(size=n_rows)).reshape(-1, n_alternatives)
    winners = np.argmax(utility, axis=1)
    choice = np.zeros_like(utility, dtype=np.int64)
    choice[np.arange(utility.shape[0]), winners] = 1

    frame = pd.DataFrame(X, columns=names)
    frame.insert(0, "alt", np.tile(np.arange(1, n_alternatives + 1), n_respondents * n_tasks))
    frame.insert(0, "task", np.tile(np.repeat(np.arange(1, n_tasks + 1), n_alternatives), n_respondents))
    frame.insert(0, "resp", np.repeat(np.arange(1, n_respondents + 1), n_tasks * n_alternatives))
    for name in names:
        if name not in continuous:
            frame[name] = frame[name].astype(np.int64)
    frame["choice"] = choice.reshape(-1)
    return frame
