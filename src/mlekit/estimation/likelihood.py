"""Likelihood objective functions for estimation.

Builds a callable that maps a parameter vector to the negative
log-likelihood, suitable for use with ``scipy.optimize.minimize``. The
same callable (negated) feeds the Metropolis-Hastings sampler, so point
estimates and posterior draws share one numerical definition.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from mlekit.exceptions import ConfigurationError
from mlekit.likelihood.mnl import mnl_loglik, mnl_probabilities, mnl_score
from mlekit.likelihood.poisson import poisson_loglik, poisson_rates, poisson_score
from mlekit.model.data import ChoiceData, CountData

ModelData = CountData | ChoiceData


@dataclass(frozen=True)
class LikelihoodFamily:
    """Log-likelihood, score and prediction for one model family."""

    name: str
    data_type: type
    loglik: Callable[[NDArray[np.float64], Any], float]
    score: Callable[[NDArray[np.float64], Any], NDArray[np.float64]]
    predict: Callable[[NDArray[np.float64], Any], NDArray[np.float64]]

    def n_units(self, data: ModelData) -> int:
        """Independent units for BIC: records for counts, tasks for choices."""
        if isinstance(data, ChoiceData):
            return data.n_tasks
        return data.n_obs


def _poisson_predict(beta: NDArray[np.float64], data: CountData | NDArray[np.float64]) -> NDArray[np.float64]:
    X = data.X if isinstance(data, CountData) else np.asarray(data, dtype=np.float64)
    return poisson_rates(beta, X)


def _mnl_predict(beta: NDArray[np.float64], data: ChoiceData) -> NDArray[np.float64]:
    if not isinstance(data, ChoiceData):
        raise ConfigurationError("MNL predictions need ChoiceData to know the task grouping")
    return mnl_probabilities(beta, data)


FAMILIES: dict[str, LikelihoodFamily] = {
    "poisson": LikelihoodFamily(
        name="poisson",
        data_type=CountData,
        loglik=lambda beta, data: poisson_loglik(beta, data.X, data.y),
        score=lambda beta, data: poisson_score(beta, data.X, data.y),
        predict=_poisson_predict,
    ),
    "mnl": LikelihoodFamily(
        name="mnl",
        data_type=ChoiceData,
        loglik=mnl_loglik,
        score=mnl_score,
        predict=_mnl_predict,
    ),
}


def resolve_family(data: ModelData, family: str | None = None) -> LikelihoodFamily:
    """Pick the family for *data*, checking an explicit choice against its type."""
    if family is None:
        for candidate in FAMILIES.values():
            if isinstance(data, candidate.data_type):
                return candidate
        raise ConfigurationError(
            f"Cannot infer model family from data of type {type(data).__name__}"
        )

    key = family.strip().lower()
    if key not in FAMILIES:
        supported = ", ".join(sorted(FAMILIES))
        raise ConfigurationError(f"Unknown model family '{family}'. Supported: {supported}")
    resolved = FAMILIES[key]
    if not isinstance(data, resolved.data_type):
        raise ConfigurationError(
            f"Family '{key}' requires {resolved.data_type.__name__}, "
            f"got {type(data).__name__}"
        )
    return resolved


def build_objective(
    data: ModelData,
    family: str | None = None,
    *,
    penalty: float | None = None,
    cache: bool = True,
    cache_max_size: int = 2048,
) -> Callable[[NDArray[np.float64]], float]:
    """Build a negative-log-likelihood objective function.

    Returns a callable ``f(theta) -> float`` where *theta* is a 1-D
    array of coefficients ordered like ``data.param_names``. The function
    returns ``-log L(theta | data)`` so that it can be **minimised**.

    A parameter vector outside the model's domain yields ``+inf`` (or
    *penalty* when given) rather than an exception.

    The callable also carries ``gradient(theta)`` (gradient of the
    negative log-likelihood), ``cache_info()`` and ``cache_clear()``.

    Args:
        data: ``CountData`` or ``ChoiceData``.
        family: ``"poisson"`` or ``"mnl"``; inferred from *data* if omitted.
        penalty: Finite value returned instead of ``+inf``.
        cache: Enable memoization for repeated ``theta`` evaluations.
        cache_max_size: Maximum number of cached points (LRU eviction).

    Raises:
        ConfigurationError: If the family does not match the data or the
            cache settings are invalid.
    """
    fam = resolve_family(data, family)
    n_params = data.n_params
    fallback = float("inf") if penalty is None else float(penalty)

    cache_store: OrderedDict[bytes, float] | None = None
    cache_hits = 0
    cache_misses = 0
    if cache:
        if cache_max_size < 1:
            raise ConfigurationError("cache_max_size must be >= 1 when cache=True")
        cache_store = OrderedDict()

    def _as_theta(theta: NDArray[np.float64]) -> NDArray[np.float64]:
        theta_arr = np.asarray(theta, dtype=np.float64).reshape(-1)
        if theta_arr.shape[0] != n_params:
            raise ConfigurationError(
                f"Expected theta with length {n_params}, got {theta_arr.shape[0]}"
            )
        return theta_arr

    def _cache_get(key: bytes) -> float | None:
        nonlocal cache_hits
        if cache_store is None:
            return None
        val = cache_store.pop(key, None)
        if val is None:
            return None
        cache_store[key] = val
        cache_hits += 1
        return val

    def _cache_put(key: bytes, value: float) -> None:
        nonlocal cache_misses
        if cache_store is None:
            return
        cache_misses += 1
        cache_store[key] = value
        if len(cache_store) > cache_max_size:
            cache_store.popitem(last=False)

    def objective(theta: NDArray[np.float64]) -> float:
        theta_arr = _as_theta(theta)
        key = theta_arr.tobytes()
        cached = _cache_get(key)
        if cached is not None:
            return cached

        if not np.all(np.isfinite(theta_arr)):
            out = fallback
        else:
            ll = float(fam.loglik(theta_arr, data))
            out = -ll if np.isfinite(ll) else fallback

        _cache_put(key, out)
        return out

    def gradient(theta: NDArray[np.float64]) -> NDArray[np.float64]:
        theta_arr = _as_theta(theta)
        with np.errstate(over="ignore", invalid="ignore"):
            return -np.asarray(fam.score(theta_arr, data), dtype=np.float64)

    def cache_info() -> dict[str, int]:
        return {
            "enabled": int(cache_store is not None),
            "hits": cache_hits,
            "misses": cache_misses,
            "size": len(cache_store) if cache_store is not None else 0,
            "max_size": cache_max_size if cache_store is not None else 0,
        }

    def cache_clear() -> None:
        nonlocal cache_hits, cache_misses
        if cache_store is not None:
            cache_store.clear()
        cache_hits = 0
        cache_misses = 0

    objective.gradient = gradient  # type: ignore[attr-defined]
    objective.family = fam  # type: ignore[attr-defined]
    objective.cache_info = cache_info  # type: ignore[attr-defined]
    objective.cache_clear = cache_clear  # type: ignore[attr-defined]

    return objective
