"""Prior and log-posterior helpers shared by MAP and MCMC estimation."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

import numpy as np
from numpy.typing import NDArray

from mlekit.exceptions import ConfigurationError
from mlekit.model.priors import PriorSpec, parse_prior_spec

PriorInput = PriorSpec | Mapping[str, Any] | Sequence[Any] | float | str | None


def resolve_initial_theta(
    initial_theta: NDArray[np.float64] | Mapping[str, float] | Sequence[float] | None,
    param_names: list[str],
) -> NDArray[np.float64]:
    """Starting vector aligned with *param_names* (zeros by default)."""
    k = len(param_names)
    if initial_theta is None:
        return np.zeros(k, dtype=np.float64)

    if isinstance(initial_theta, Mapping):
        unknown = sorted(set(initial_theta) - set(param_names))
        if unknown:
            raise ConfigurationError(f"Unknown parameters in initial values: {unknown}")
        x0 = np.zeros(k, dtype=np.float64)
        for i, name in enumerate(param_names):
            if name in initial_theta:
                x0[i] = float(initial_theta[name])
    else:
        x0 = np.asarray(initial_theta, dtype=np.float64).reshape(-1)
        if x0.shape[0] != k:
            raise ConfigurationError(
                f"Initial parameter length ({x0.shape[0]}) must match "
                f"covariate column count ({k})"
            )
        x0 = x0.copy()

    if not np.all(np.isfinite(x0)):
        raise ConfigurationError("Initial parameter values must be finite")
    return x0


def _compile_priors(
    priors: PriorInput,
    param_names: list[str],
    default: PriorSpec | None,
) -> list[PriorSpec | None]:
    k = len(param_names)
    if priors is None:
        return [default] * k

    if isinstance(priors, PriorSpec):
        return [priors] * k

    if isinstance(priors, (str, int, float)):
        return [_parse(priors, "<all>")] * k

    if isinstance(priors, Mapping) and not {"distribution", "mean", "std", "variance"} & set(priors):
        unknown = sorted(set(priors) - set(param_names))
        if unknown:
            raise ConfigurationError(f"Priors given for unknown parameters: {unknown}")
        compiled: list[PriorSpec | None] = []
        for name in param_names:
            compiled.append(_parse(priors[name], name) if name in priors else default)
        return compiled

    if isinstance(priors, Mapping):
        single = _parse(priors, "<all>")
        return [single] * k

    items = list(priors)
    if len(items) != k:
        raise ConfigurationError(
            f"Number of priors ({len(items)}) must match parameter count ({k})"
        )
    return [_parse(item, name) for item, name in zip(items, param_names, strict=True)]


def _parse(prior: Any, name: str) -> PriorSpec | None:
    try:
        return parse_prior_spec(prior)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid prior for '{name}': {exc}") from exc


def build_log_prior_evaluator(
    priors: PriorInput,
    param_names: list[str],
    *,
    default: PriorSpec | None = None,
    require_priors: bool = True,
) -> Callable[[NDArray[np.float64]], float]:
    """Build ``theta -> log prior`` callable aligned with *param_names*.

    *priors* may be one ``PriorSpec`` applied to every coefficient, a
    mapping ``name -> prior`` (missing names fall back to *default*), or a
    sequence with one prior per coefficient. Prior entries accept the
    forms understood by ``parse_prior_spec``.
    """
    compiled = _compile_priors(priors, param_names, default)

    if require_priors:
        missing = [name for name, p in zip(param_names, compiled, strict=True) if p is None]
        if missing:
            raise ConfigurationError(f"Missing prior for parameters: {missing}")

    normal_idx = [i for i, p in enumerate(compiled) if p is not None and p.distribution == "normal"]
    means = np.array([compiled[i].mean for i in normal_idx], dtype=np.float64)
    stds = np.array([compiled[i].std for i in normal_idx], dtype=np.float64)
    const = float(-0.5 * len(normal_idx) * np.log(2.0 * np.pi) - np.sum(np.log(stds)))
    idx = np.asarray(normal_idx, dtype=np.int64)
    k = len(param_names)

    def log_prior(theta: NDArray[np.float64]) -> float:
        theta_arr = np.asarray(theta, dtype=np.float64).reshape(-1)
        if theta_arr.shape[0] != k:
            raise ConfigurationError(f"Expected theta length {k}, got {theta_arr.shape[0]}")
        if not np.all(np.isfinite(theta_arr)):
            return float("-inf")
        if idx.size == 0:
            return 0.0
        z = (theta_arr[idx] - means) / stds
        return float(const - 0.5 * np.dot(z, z))

    def gradient(theta: NDArray[np.float64]) -> NDArray[np.float64]:
        theta_arr = np.asarray(theta, dtype=np.float64).reshape(-1)
        out = np.zeros(k, dtype=np.float64)
        if idx.size:
            out[idx] = -(theta_arr[idx] - means) / (stds * stds)
        return out

    log_prior.priors = compiled  # type: ignore[attr-defined]
    log_prior.gradient = gradient  # type: ignore[attr-defined]
    return log_prior


def build_log_posterior(
    objective: Callable[[NDArray[np.float64]], float],
    log_prior: Callable[[NDArray[np.float64]], float],
    *,
    prior_weight: float = 1.0,
) -> Callable[[NDArray[np.float64]], float]:
    """Combine a negative-log-likelihood objective with a log prior.

    Returns ``theta -> log L(theta) + prior_weight * log p(theta)``, or
    ``-inf`` when either term is not finite.
    """
    if not np.isfinite(prior_weight) or prior_weight <= 0.0:
        raise ConfigurationError(f"prior_weight must be finite and > 0, got {prior_weight}")

    def log_posterior(theta: NDArray[np.float64]) -> float:
        nll = float(objective(theta))
        if not np.isfinite(nll):
            return float("-inf")
        lp = float(log_prior(theta))
        if not np.isfinite(lp):
            return float("-inf")
        return float(-nll + prior_weight * lp)

    return log_posterior
