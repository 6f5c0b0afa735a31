"""Poisson log-likelihood with a log link.

For record ``i`` the rate is ``lam_i = exp(X_i @ beta)`` so any real
``beta`` gives a valid rate. ``log(y_i!)`` is evaluated through
``gammaln(y_i + 1)`` so large counts do not overflow.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray
from scipy import special

from mlekit.exceptions import DomainError


def poisson_rates(beta: NDArray[np.float64], X: NDArray[np.float64]) -> NDArray[np.float64]:
    """Fitted rates ``exp(X @ beta)``."""
    with np.errstate(over="ignore"):
        return np.exp(X @ np.asarray(beta, dtype=np.float64))


def poisson_loglik(
    beta: NDArray[np.float64],
    X: NDArray[np.float64],
    y: NDArray[np.float64],
) -> float:
    """Log-likelihood ``sum(y * eta - exp(eta) - log(y!))`` with ``eta = X @ beta``."""
    eta = X @ np.asarray(beta, dtype=np.float64)
    with np.errstate(over="ignore", invalid="ignore"):
        ll = float(np.sum(y * eta - np.exp(eta) - special.gammaln(y + 1.0)))
    if math.isnan(ll):
        return float("-inf")
    return ll


def neg_poisson_loglik(
    beta: NDArray[np.float64],
    X: NDArray[np.float64],
    y: NDArray[np.float64],
) -> float:
    return -poisson_loglik(beta, X, y)


def poisson_score(
    beta: NDArray[np.float64],
    X: NDArray[np.float64],
    y: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Gradient of the log-likelihood: ``X.T @ (y - lam)``."""
    return X.T @ (y - poisson_rates(beta, X))


def check_rate(lam: float) -> float:
    """Return *lam* as float, raising ``DomainError`` if it is not a valid rate."""
    value = float(lam)
    if not math.isfinite(value) or value <= 0.0:
        raise DomainError(f"Poisson rate must be finite and > 0, got {lam}")
    return value


def poisson_loglik_rate(lam: float, y: NDArray[np.float64]) -> float:
    """Log-likelihood of a single rate shared by all counts.

    Returns ``-inf`` for a non-positive or non-finite rate instead of
    raising, so bounded scalar searches can probe freely.
    """
    rate = float(lam)
    if not math.isfinite(rate) or rate <= 0.0:
        return float("-inf")
    y_arr = np.asarray(y, dtype=np.float64).reshape(-1)
    return float(
        np.sum(y_arr) * math.log(rate) - rate * y_arr.shape[0] - np.sum(special.gammaln(y_arr + 1.0))
    )


def neg_poisson_loglik_rate(lam: float, y: NDArray[np.float64]) -> float:
    return -poisson_loglik_rate(lam, y)
