"""Multinomial-logit log-likelihood over grouped choice tasks.

Utilities are ``v = X @ beta``. Within each task the choice probabilities
are a softmax of the task's utilities. The per-task maximum is subtracted
before exponentiating, so large utilities never overflow and the result
is unchanged by adding a constant to every utility in a task.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from mlekit.exceptions import ConfigurationError

if TYPE_CHECKING:
    from mlekit.model.data import ChoiceData


def mnl_utilities(beta: NDArray[np.float64], X: NDArray[np.float64]) -> NDArray[np.float64]:
    return X @ np.asarray(beta, dtype=np.float64)


def _shift_by_task_max(utilities: NDArray[np.float64]) -> NDArray[np.float64]:
    """Subtract each row's maximum.

    Rows whose maximum is ``+inf`` put all mass on the infinite entries:
    they map to 0 and every finite entry maps to ``-inf``.
    """
    v = np.asarray(utilities, dtype=np.float64)
    top = np.max(v, axis=1, keepdims=True)
    with np.errstate(invalid="ignore"):
        shifted = v - top
    inf_rows = np.isposinf(top[:, 0])
    if np.any(inf_rows):
        shifted[inf_rows] = np.where(np.isposinf(v[inf_rows]), 0.0, -np.inf)
    return shifted


def task_log_softmax(utilities: NDArray[np.float64]) -> NDArray[np.float64]:
    """Log choice probabilities for an ``(n_tasks, n_alternatives)`` utility array."""
    shifted = _shift_by_task_max(utilities)
    with np.errstate(divide="ignore"):
        log_norm = np.log(np.sum(np.exp(shifted), axis=1, keepdims=True))
    return shifted - log_norm


def task_softmax(utilities: NDArray[np.float64]) -> NDArray[np.float64]:
    """Choice probabilities for an ``(n_tasks, n_alternatives)`` utility array."""
    expv = np.exp(_shift_by_task_max(utilities))
    return expv / np.sum(expv, axis=1, keepdims=True)


def _grouped_utilities(
    beta: NDArray[np.float64],
    X_grouped: NDArray[np.float64],
    n_alternatives: int,
) -> NDArray[np.float64]:
    beta_arr = np.asarray(beta, dtype=np.float64).reshape(-1)
    if beta_arr.shape[0] != X_grouped.shape[1]:
        raise ConfigurationError(
            f"beta length ({beta_arr.shape[0]}) must match X columns ({X_grouped.shape[1]})"
        )
    if X_grouped.shape[0] % n_alternatives != 0:
        raise ConfigurationError(
            f"{X_grouped.shape[0]} records cannot be split into tasks of {n_alternatives}"
        )
    with np.errstate(over="ignore", invalid="ignore"):
        return mnl_utilities(beta_arr, X_grouped).reshape(-1, n_alternatives)


def mnl_loglik_arrays(
    beta: NDArray[np.float64],
    X_grouped: NDArray[np.float64],
    chosen_grouped: NDArray[np.float64],
    n_alternatives: int,
) -> float:
    """Log-likelihood for records already ordered task by task.

    Args:
        beta: Coefficients ``(n_params,)``.
        X_grouped: Covariates ``(n_tasks * n_alternatives, n_params)``.
        chosen_grouped: 0/1 indicators, any shape with ``n_tasks * n_alternatives``
            entries.
        n_alternatives: Records per task.
    """
    v = _grouped_utilities(beta, X_grouped, n_alternatives)
    chosen = np.asarray(chosen_grouped, dtype=np.float64).reshape(v.shape)
    log_p = task_log_softmax(v)
    with np.errstate(invalid="ignore"):
        ll = float(np.sum(np.where(chosen > 0.0, chosen * log_p, 0.0)))
    if np.isnan(ll):
        return float("-inf")
    return ll


def mnl_loglik(beta: NDArray[np.float64], data: ChoiceData) -> float:
    """Sum over records of ``chosen * log P(record)``."""
    return mnl_loglik_arrays(beta, data.X_grouped, data.chosen_grouped, data.n_alternatives)


def neg_mnl_loglik(beta: NDArray[np.float64], data: ChoiceData) -> float:
    return -mnl_loglik(beta, data)


def mnl_score(beta: NDArray[np.float64], data: ChoiceData) -> NDArray[np.float64]:
    """Gradient of the log-likelihood: ``X.T @ (chosen - P)``."""
    v = _grouped_utilities(beta, data.X_grouped, data.n_alternatives)
    residual = (data.chosen_grouped - task_softmax(v)).reshape(-1)
    return data.X_grouped.T @ residual


def mnl_probabilities(beta: NDArray[np.float64], data: ChoiceData) -> NDArray[np.float64]:
    """Choice probability of every record, in the original record order."""
    v = _grouped_utilities(beta, data.X_grouped, data.n_alternatives)
    return data.ungroup(task_softmax(v))
