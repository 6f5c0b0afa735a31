"""Data containers for count and discrete-choice models.

Both containers validate their inputs on construction so that every
dimension problem surfaces as a ``ConfigurationError`` before an optimizer
or sampler takes its first step.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from mlekit.exceptions import ConfigurationError


def _as_design(X: Any) -> NDArray[np.float64]:
    arr = np.asarray(X, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)
    if arr.ndim != 2:
        raise ConfigurationError(f"X must be 2-D (n_obs, n_params), got ndim={arr.ndim}")
    if arr.shape[0] == 0 or arr.shape[1] == 0:
        raise ConfigurationError(f"X must be non-empty, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ConfigurationError("X contains non-finite values")
    return arr


def _resolve_param_names(names: Sequence[str] | None, k: int) -> list[str]:
    if names is None:
        return [f"x{i}" for i in range(k)]
    resolved = [str(n) for n in names]
    if len(resolved) != k:
        raise ConfigurationError(
            f"param_names length must match X columns ({k}), got {len(resolved)}"
        )
    if len(set(resolved)) != len(resolved):
        raise ConfigurationError("param_names must be unique")
    return resolved


def build_design_matrix(
    df: pd.DataFrame,
    covariates: Sequence[str],
    *,
    categorical: Sequence[str] = (),
    squared: Sequence[str] = (),
    intercept: bool = True,
) -> tuple[NDArray[np.float64], list[str]]:
    """Build a covariate matrix from a DataFrame.

    Columns are laid out as: intercept, covariates in the given order (each
    categorical column expanded into indicators with its first level
    dropped), then squared terms named ``"<col>^2"``.

    Args:
        df: Cleaned input frame.
        covariates: Columns to include.
        categorical: Subset of *covariates* to indicator-encode.
        squared: Numeric columns whose square is appended.
        intercept: Prepend a column of ones named ``"intercept"``.

    Returns:
        ``(X, names)``.
    """
    missing = [c for c in [*covariates, *squared] if c not in df.columns]
    if missing:
        raise ConfigurationError(f"Columns not found in data: {missing}")
    unknown_cat = [c for c in categorical if c not in covariates]
    if unknown_cat:
        raise ConfigurationError(
            f"Categorical columns must also be listed as covariates: {unknown_cat}"
        )

    parts: list[pd.DataFrame] = []
    if intercept:
        parts.append(pd.DataFrame({"intercept": np.ones(len(df))}, index=df.index))

    for col in covariates:
        if col in categorical:
            dummies = pd.get_dummies(df[col], prefix=col, drop_first=True, dtype=float)
            parts.append(dummies)
        else:
            parts.append(df[[col]].astype(float))

    for col in squared:
        parts.append(pd.DataFrame({f"{col}^2": df[col].astype(float) ** 2}, index=df.index))

    if not parts:
        raise ConfigurationError("Design matrix has no columns")

    design = pd.concat(parts, axis=1)
    if design.isna().any().any():
        raise ConfigurationError("Design matrix contains missing values; clean data first")
    return design.to_numpy(dtype=np.float64), [str(c) for c in design.columns]


# ---------------------------------------------------------------------------
# Count data (Poisson)
# ---------------------------------------------------------------------------


@dataclass
class CountData:
    """Covariates and non-negative integer counts for Poisson regression.

    Attributes:
        X: Covariate matrix ``(n_obs, n_params)``.
        y: Counts ``(n_obs,)``.
        param_names: One name per column of *X*.
    """

    X: NDArray[np.float64]
    y: NDArray[np.float64]
    param_names: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.X = _as_design(self.X)
        y = np.asarray(self.y, dtype=np.float64).reshape(-1)
        if y.shape[0] != self.X.shape[0]:
            raise ConfigurationError(
                f"y length ({y.shape[0]}) must match X rows ({self.X.shape[0]})"
            )
        if not np.all(np.isfinite(y)):
            raise ConfigurationError("y contains non-finite values")
        if np.any(y < 0) or np.any(y != np.round(y)):
            raise ConfigurationError("y must contain non-negative integer counts")
        self.y = y
        self.param_names = _resolve_param_names(self.param_names or None, self.X.shape[1])

    @property
    def n_obs(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_params(self) -> int:
        return int(self.X.shape[1])

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        outcome: str,
        covariates: Sequence[str],
        *,
        categorical: Sequence[str] = (),
        squared: Sequence[str] = (),
        intercept: bool = True,
    ) -> CountData:
        """Build from a DataFrame with one row per observation."""
        if outcome not in df.columns:
            raise ConfigurationError(f"Outcome column '{outcome}' not found in data")
        X, names = build_design_matrix(
            df, covariates, categorical=categorical, squared=squared, intercept=intercept
        )
        return cls(X, df[outcome].to_numpy(dtype=np.float64), names)


# ---------------------------------------------------------------------------
# Choice data (multinomial logit)
# ---------------------------------------------------------------------------


@dataclass
class ChoiceData:
    """Long-format discrete-choice data.

    One record per alternative shown in a choice task. Records sharing a
    task id form one task; each task must contain exactly one chosen
    record and every task must have the same number of alternatives.

    Records are regrouped task by task (stable in the original order) so
    the likelihood can work on an ``(n_tasks, n_alternatives)`` view.
    ``order`` maps grouped positions back to the original records.
    """

    X: NDArray[np.float64]
    chosen: NDArray[np.float64]
    task_ids: NDArray[Any]
    param_names: list[str] = field(default_factory=list)

    order: NDArray[np.int64] = field(init=False, repr=False)
    n_tasks: int = field(init=False)
    n_alternatives: int = field(init=False)
    X_grouped: NDArray[np.float64] = field(init=False, repr=False)
    chosen_grouped: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.X = _as_design(self.X)
        n = self.X.shape[0]

        chosen = np.asarray(self.chosen, dtype=np.float64).reshape(-1)
        if chosen.shape[0] != n:
            raise ConfigurationError(
                f"chosen length ({chosen.shape[0]}) must match X rows ({n})"
            )
        if not np.isin(chosen, (0.0, 1.0)).all():
            raise ConfigurationError("chosen must be binary (contain only 0 or 1)")

        task_ids = np.asarray(self.task_ids).reshape(-1)
        if task_ids.shape[0] != n:
            raise ConfigurationError(
                f"task_ids length ({task_ids.shape[0]}) must match X rows ({n})"
            )

        if pd.isna(task_ids).any():
            raise ConfigurationError("task_ids contain missing values")

        codes, _ = pd.factorize(task_ids, sort=False)
        sizes = np.bincount(codes)
        if sizes.min() < 2:
            raise ConfigurationError("Each choice task must have at least 2 alternatives")
        if not np.all(sizes == sizes[0]):
            raise ConfigurationError(
                "All choice tasks must have the same number of alternatives; "
                f"got sizes {sorted(set(sizes.tolist()))}"
            )

        n_chosen = np.bincount(codes, weights=chosen)
        if not np.all(n_chosen == 1.0):
            bad = np.flatnonzero(n_chosen != 1.0)
            raise ConfigurationError(
                "Each choice task must have exactly one chosen alternative. "
                f"Invalid tasks: {task_ids[np.isin(codes, bad[:10])][:10].tolist()}"
                + ("..." if len(bad) > 10 else "")
            )

        self.chosen = chosen
        self.task_ids = task_ids
        self.order = np.argsort(codes, kind="stable").astype(np.int64)
        self.n_tasks = int(sizes.shape[0])
        self.n_alternatives = int(sizes[0])
        self.X_grouped = self.X[self.order]
        self.chosen_grouped = chosen[self.order].reshape(self.n_tasks, self.n_alternatives)
        self.param_names = _resolve_param_names(self.param_names or None, self.X.shape[1])

    @property
    def n_obs(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_params(self) -> int:
        return int(self.X.shape[1])

    def ungroup(self, values: NDArray[np.float64]) -> NDArray[np.float64]:
        """Map a task-grouped ``(n_tasks, n_alternatives)`` array back to record order."""
        flat = np.asarray(values).reshape(-1)
        out = np.empty_like(flat)
        out[self.order] = flat
        return out

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        chosen: str,
        covariates: Sequence[str],
        task_keys: Sequence[str],
        *,
        categorical: Sequence[str] = (),
        intercept: bool = False,
    ) -> ChoiceData:
        """Build from a long-format DataFrame.

        A task is the combination of the *task_keys* columns, e.g.
        ``["resp", "task"]``. MNL utilities usually omit the intercept
        since it cancels within a task.
        """
        if chosen not in df.columns:
            raise ConfigurationError(f"Choice column '{chosen}' not found in data")
        missing = [k for k in task_keys if k not in df.columns]
        if missing:
            raise ConfigurationError(f"Task key columns not found in data: {missing}")
        if not task_keys:
            raise ConfigurationError("task_keys must name at least one column")
        if df[list(task_keys)].isna().any().any():
            raise ConfigurationError(f"Task key columns contain missing values: {list(task_keys)}")

        X, names = build_design_matrix(
            df, covariates, categorical=categorical, intercept=intercept
        )
        task_ids = df.groupby(list(task_keys), sort=False).ngroup().to_numpy()
        return cls(X, df[chosen].to_numpy(dtype=np.float64), task_ids, names)
