"""Maximum likelihood estimation.

Uses ``scipy.optimize.minimize`` (BFGS by default) to find the parameter
vector that maximises the log-likelihood, then inverts the numerical
Hessian of the negative log-likelihood at the optimum for standard errors.
Both steps run on standardised covariate columns and are mapped back to
the original coefficients.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import linalg, optimize, stats

from mlekit.estimation.likelihood import (
    FAMILIES,
    ModelData,
    build_objective,
    resolve_family,
)
from mlekit.estimation.posterior import (
    PriorInput,
    build_log_posterior,
    build_log_prior_evaluator,
    resolve_initial_theta,
)
from mlekit.exceptions import ConfigurationError, EstimationError, NumericalInstabilityError
from mlekit.likelihood.poisson import neg_poisson_loglik_rate, poisson_loglik_rate
from mlekit.logging_config import get_logger

logger = get_logger(__name__)

Z_95 = 1.959964
MAX_CONDITION = 1e12


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass
class MLEResult:
    """Results from maximum likelihood estimation.

    Attributes:
        param_names: Coefficient names, in estimation order.
        estimate: Point estimate ``beta_hat``.
        log_likelihood: Log-likelihood at the optimum.
        std_errors: Hessian-based standard errors, or None when not
            requested or the score at the estimate is not close to zero.
        conf_int: ``(n_params, 2)`` 95% Wald intervals, or None.
        hessian: Hessian of the negative log-likelihood at the optimum.
        covariance: Inverse of *hessian*.
        aic: Akaike information criterion.
        bic: Bayesian information criterion.
        n_obs: Independent units (records, or choice tasks for MNL).
        n_params: Number of estimated parameters.
        success: The optimiser's own convergence flag.
        message: Optimiser status message.
        n_iterations: Number of optimiser iterations.
        family: Likelihood family name.
        method: Optimiser name.
    """

    param_names: list[str]
    estimate: NDArray[np.float64]
    log_likelihood: float
    std_errors: NDArray[np.float64] | None
    conf_int: NDArray[np.float64] | None
    hessian: NDArray[np.float64] | None
    covariance: NDArray[np.float64] | None
    aic: float
    bic: float
    n_obs: int
    n_params: int
    success: bool
    message: str
    n_iterations: int
    family: str = ""
    method: str = "BFGS"

    @property
    def parameters(self) -> dict[str, float]:
        return {name: float(v) for name, v in zip(self.param_names, self.estimate, strict=True)}

    def to_frame(self) -> pd.DataFrame:
        """Coefficient table indexed by parameter name."""
        table = pd.DataFrame({"estimate": self.estimate}, index=pd.Index(self.param_names, name="parameter"))
        if self.std_errors is not None and self.conf_int is not None:
            z = self.estimate / self.std_errors
            table["std_error"] = self.std_errors
            table["z"] = z
            table["p_value"] = 2.0 * stats.norm.sf(np.abs(z))
            table["ci_lower"] = self.conf_int[:, 0]
            table["ci_upper"] = self.conf_int[:, 1]
        return table

    def predict(self, data: Any) -> NDArray[np.float64]:
        """Poisson rates or MNL choice probabilities at the estimate."""
        return FAMILIES[self.family].predict(self.estimate, data)

    def _header(self) -> list[str]:
        return [
            "Maximum Likelihood Estimation",
            "=" * 66,
            f"  Family:         {self.family}",
            f"  Converged:      {self.success}",
            f"  Log-likelihood: {self.log_likelihood:.4f}",
            f"  AIC:            {self.aic:.4f}",
            f"  BIC:            {self.bic:.4f}",
            f"  Observations:   {self.n_obs}",
            f"  Parameters:     {self.n_params}",
            f"  Iterations:     {self.n_iterations}",
        ]

    def summary(self) -> str:
        """Human-readable coefficient table."""
        lines = self._header()
        lines += [
            "",
            f"  {'Parameter':<15} {'Estimate':>12} {'Std.Err':>12} {'CI 2.5%':>12} {'CI 97.5%':>12}",
            f"  {'-' * 15} {'-' * 12} {'-' * 12} {'-' * 12} {'-' * 12}",
        ]
        for i, name in enumerate(self.param_names):
            if self.std_errors is None or self.conf_int is None:
                extra = f"{'n/a':>12} {'n/a':>12} {'n/a':>12}"
            else:
                lo, hi = self.conf_int[i]
                extra = f"{self.std_errors[i]:12.6f} {lo:12.6f} {hi:12.6f}"
            lines.append(f"  {name:<15} {self.estimate[i]:12.6f} {extra}")
        return "\n".join(lines)


@dataclass
class MAPResult(MLEResult):
    """Results from posterior mode (MAP) optimization."""

    log_prior: float = float("nan")
    log_posterior: float = float("nan")

    def _header(self) -> list[str]:
        lines = super()._header()
        lines[0] = "Maximum A Posteriori (MAP)"
        lines.insert(3, f"  Log-posterior:  {self.log_posterior:.4f}")
        lines.insert(5, f"  Log-prior:      {self.log_prior:.4f}")
        return lines


@dataclass
class RateResult:
    """Bounded scalar estimate of a single Poisson rate."""

    rate: float
    std_error: float
    conf_int: tuple[float, float]
    log_likelihood: float
    n_obs: int
    success: bool
    message: str
    n_iterations: int
    bounds: tuple[float, float] = field(default=(0.001, 10.0))

    def summary(self) -> str:
        lo, hi = self.conf_int
        return "\n".join(
            [
                "Poisson Rate (bounded scalar MLE)",
                "=" * 50,
                f"  Converged:      {self.success}",
                f"  Rate:           {self.rate:.6f}",
                f"  Std.Err:        {self.std_error:.6f}",
                f"  95% CI:         [{lo:.6f}, {hi:.6f}]",
                f"  Log-likelihood: {self.log_likelihood:.4f}",
                f"  Observations:   {self.n_obs}",
            ]
        )


# ---------------------------------------------------------------------------
# Standard errors via numerical Hessian
# ---------------------------------------------------------------------------


def compute_hessian(
    objective: Callable[[NDArray[np.float64]], float],
    theta_hat: NDArray[np.float64],
    *,
    eps: float = 1e-4,
    gradient: Callable[[NDArray[np.float64]], NDArray[np.float64]] | None = None,
) -> NDArray[np.float64]:
    """Finite-difference Hessian of *objective* at *theta_hat*.

    With *gradient*, each column is a central difference of the gradient.
    Otherwise second differences of the objective are used, reusing
    objective evaluations across repeated points.
    """
    if eps <= 0.0 or not np.isfinite(eps):
        raise ConfigurationError(f"hessian eps must be finite and > 0, got {eps}")

    theta = np.asarray(theta_hat, dtype=np.float64).reshape(-1)
    k = int(theta.shape[0])
    H = np.zeros((k, k), dtype=np.float64)

    if gradient is not None:
        for j in range(k):
            step = np.zeros(k, dtype=np.float64)
            step[j] = eps
            g_plus = np.asarray(gradient(theta + step), dtype=np.float64)
            g_minus = np.asarray(gradient(theta - step), dtype=np.float64)
            H[:, j] = (g_plus - g_minus) / (2.0 * eps)
        return 0.5 * (H + H.T)

    eval_cache: dict[bytes, float] = {}

    def eval_point(x: NDArray[np.float64]) -> float:
        arr = np.asarray(x, dtype=np.float64).reshape(-1)
        key = arr.tobytes()
        if key not in eval_cache:
            eval_cache[key] = float(objective(arr))
        return eval_cache[key]

    f0 = eval_point(theta)

    for i in range(k):
        for j in range(i, k):
            ei = np.zeros(k, dtype=np.float64)
            ej = np.zeros(k, dtype=np.float64)
            ei[i] = eps
            ej[j] = eps

            if i == j:
                fpp = eval_point(theta + ei + ei)
                fmm = eval_point(theta - ei - ei)
                H[i, i] = (fpp - 2.0 * f0 + fmm) / (4.0 * eps * eps)
                continue

            fpp = eval_point(theta + ei + ej)
            fpm = eval_point(theta + ei - ej)
            fmp = eval_point(theta - ei + ej)
            fmm = eval_point(theta - ei - ej)
            H[i, j] = (fpp - fpm - fmp + fmm) / (4.0 * eps * eps)
            H[j, i] = H[i, j]

    return H


def covariance_from_hessian(
    hessian: NDArray[np.float64],
    *,
    ridge: float = 0.0,
    max_condition: float = MAX_CONDITION,
) -> NDArray[np.float64]:
    """Invert the Hessian of the negative log-likelihood.

    Args:
        hessian: Symmetric ``(k, k)`` matrix.
        ridge: Added to the diagonal before inversion. Non-zero values
            change the estimand and must be chosen explicitly.
        max_condition: Largest accepted condition number.

    Raises:
        NumericalInstabilityError: If the matrix is non-finite, singular,
            ill-conditioned or not positive definite.
    """
    if ridge < 0.0 or not np.isfinite(ridge):
        raise ConfigurationError(f"ridge must be finite and >= 0, got {ridge}")

    H = np.asarray(hessian, dtype=np.float64)
    if ridge > 0.0:
        H = H + ridge * np.eye(H.shape[0])
    if not np.all(np.isfinite(H)):
        raise NumericalInstabilityError("Hessian contains non-finite entries")

    cond = np.linalg.cond(H)
    if not np.isfinite(cond) or cond > max_condition:
        raise NumericalInstabilityError(
            f"Hessian is singular or ill-conditioned (condition number {cond:.3g}); "
            "check for collinear or constant covariates"
        )

    try:
        factor = linalg.cho_factor(H, lower=True)
    except linalg.LinAlgError as exc:
        raise NumericalInstabilityError(
            "Hessian is not positive definite at the reported optimum"
        ) from exc

    return linalg.cho_solve(factor, np.eye(H.shape[0]))


def _wald_interval(estimate: NDArray[np.float64], std_errors: NDArray[np.float64]) -> NDArray[np.float64]:
    return np.column_stack((estimate - Z_95 * std_errors, estimate + Z_95 * std_errors))


def _compute_information_criteria(log_likelihood: float, n_params: int, n_obs: int) -> tuple[float, float]:
    aic = -2.0 * log_likelihood + 2.0 * n_params
    bic = -2.0 * log_likelihood + n_params * np.log(n_obs)
    return float(aic), float(bic)


# ---------------------------------------------------------------------------
# Column scaling
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ColumnScaling:
    """Linear reparameterisation ``beta = transform @ gamma``.

    Each varying column of the design is divided by its standard
    deviation. When the design also has a constant non-zero column (an
    intercept), varying columns are centred and the shift is folded into
    that column's coefficient, so ``X @ beta == Z @ gamma`` with ``Z`` the
    standardised design. Constant columns are left untouched, which keeps
    an all-zero column's Hessian row exactly zero.

    The optimiser and the finite-difference Hessian both work on
    ``gamma``; results are mapped back to ``beta`` afterwards.
    """

    transform: NDArray[np.float64]
    inverse: NDArray[np.float64]

    @classmethod
    def identity(cls, k: int) -> ColumnScaling:
        return cls(np.eye(k), np.eye(k))

    @classmethod
    def from_design(cls, X: NDArray[np.float64]) -> ColumnScaling:
        X_arr = np.asarray(X, dtype=np.float64)
        k = int(X_arr.shape[1])
        if X_arr.shape[0] == 0 or not np.all(np.isfinite(X_arr)):
            return cls.identity(k)

        center = X_arr.mean(axis=0)
        spread = X_arr.std(axis=0)
        varying = spread > 1e-12 * np.maximum(1.0, np.abs(center))
        anchors = np.flatnonzero(~varying & (np.abs(center) > 0.0))
        anchor = int(anchors[0]) if anchors.size else None

        T = np.eye(k)
        for j in np.flatnonzero(varying):
            T[j, j] = 1.0 / spread[j]
            if anchor is not None:
                T[anchor, j] = -center[j] / (spread[j] * center[anchor])
        return cls(T, np.linalg.inv(T))

    def to_beta(self, gamma: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.transform @ np.asarray(gamma, dtype=np.float64)

    def to_gamma(self, beta: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.inverse @ np.asarray(beta, dtype=np.float64)

    def wrap(
        self,
        objective: Callable[[NDArray[np.float64]], float],
        gradient: Callable[[NDArray[np.float64]], NDArray[np.float64]] | None = None,
    ) -> tuple[
        Callable[[NDArray[np.float64]], float],
        Callable[[NDArray[np.float64]], NDArray[np.float64]] | None,
    ]:
        """Objective (and gradient) as functions of ``gamma``."""

        def scaled_objective(gamma: NDArray[np.float64]) -> float:
            return objective(self.to_beta(gamma))

        if gradient is None:
            return scaled_objective, None

        def scaled_gradient(gamma: NDArray[np.float64]) -> NDArray[np.float64]:
            return self.transform.T @ np.asarray(gradient(self.to_beta(gamma)), dtype=np.float64)

        return scaled_objective, scaled_gradient

    def hessian_to_beta(self, hessian: NDArray[np.float64]) -> NDArray[np.float64]:
        H = self.inverse.T @ hessian @ self.inverse
        return 0.5 * (H + H.T)

    def covariance_to_beta(self, covariance: NDArray[np.float64]) -> NDArray[np.float64]:
        cov = self.transform @ covariance @ self.transform.T
        return 0.5 * (cov + cov.T)


def _design_scaling(data: ModelData, k: int) -> ColumnScaling:
    X = np.asarray(data.X, dtype=np.float64)
    if X.ndim != 2 or X.shape[1] != k:
        return ColumnScaling.identity(k)
    return ColumnScaling.from_design(X)


def _is_stationary(gradient_value: NDArray[np.float64], fun: float, tol: float) -> bool:
    """First-order optimality: ``max|grad| <= tol * max(1, |f|)``."""
    g = np.asarray(gradient_value, dtype=np.float64)
    if not np.all(np.isfinite(g)) or not np.isfinite(fun):
        return False
    return bool(np.max(np.abs(g), initial=0.0) <= tol * max(1.0, abs(float(fun))))


def _minimize_with_restarts(
    objective: Callable[[NDArray[np.float64]], float],
    x0: NDArray[np.float64],
    *,
    jac: Callable[[NDArray[np.float64]], NDArray[np.float64]] | None,
    method: str,
    options: dict[str, Any] | None,
    n_restarts: int,
    restart_scale: float,
    rng: np.random.Generator | None,
    seed: int | None,
) -> optimize.OptimizeResult:
    if n_restarts < 0:
        raise ConfigurationError(f"n_restarts must be >= 0, got {n_restarts}")
    if restart_scale <= 0.0:
        raise ConfigurationError(f"restart_scale must be > 0, got {restart_scale}")

    start_points = [x0]
    if n_restarts > 0:
        rng = rng if rng is not None else np.random.default_rng(seed)
        noise = rng.normal(scale=restart_scale, size=(n_restarts, x0.shape[0]))
        start_points.extend(x0 + noise_i for noise_i in noise)

    best: optimize.OptimizeResult | None = None
    for start in start_points:
        result = optimize.minimize(objective, start, jac=jac, method=method, options=options)
        logger.debug("start %s -> f=%.6f (%s)", np.round(start, 4), result.fun, result.message)
        if best is None or result.fun < best.fun:
            best = result

    assert best is not None
    return best


def _standard_errors(
    objective: Callable[[NDArray[np.float64]], float],
    theta_hat: NDArray[np.float64],
    *,
    hessian_eps: float,
    gradient: Callable[[NDArray[np.float64]], NDArray[np.float64]] | None,
    ridge: float,
    max_condition: float,
    scaling: ColumnScaling | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    # Differencing and inversion happen on the scaled problem.
    if scaling is None:
        scaling = ColumnScaling.identity(int(np.asarray(theta_hat).shape[0]))
    scaled_objective, scaled_gradient = scaling.wrap(objective, gradient)
    H_scaled = compute_hessian(
        scaled_objective, scaling.to_gamma(theta_hat), eps=hessian_eps, gradient=scaled_gradient
    )
    cov_scaled = covariance_from_hessian(H_scaled, ridge=ridge, max_condition=max_condition)
    H = scaling.hessian_to_beta(H_scaled)
    cov = scaling.covariance_to_beta(cov_scaled)
    diag = np.diag(cov)
    if np.any(diag <= 0.0):
        raise NumericalInstabilityError("Inverse Hessian has non-positive variances")
    return H, cov, np.sqrt(diag)


# ---------------------------------------------------------------------------
# Estimators
# ---------------------------------------------------------------------------


def estimate_mle(
    data: ModelData,
    *,
    family: str | None = None,
    x0: NDArray[np.float64] | Mapping[str, float] | Sequence[float] | None = None,
    method: str = "BFGS",
    options: dict[str, Any] | None = None,
    compute_se: bool = True,
    ridge: float = 0.0,
    hessian: str = "gradient",
    hessian_eps: float | None = None,
    max_condition: float = MAX_CONDITION,
    n_restarts: int = 0,
    restart_scale: float = 0.5,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    first_order_tol: float = 1e-5,
) -> MLEResult:
    """Estimate coefficients by maximum likelihood.

    Args:
        data: ``CountData`` (Poisson) or ``ChoiceData`` (MNL).
        family: Override family inference (``"poisson"`` or ``"mnl"``).
        x0: Starting values; zeros by default. Length must equal the
            number of covariate columns.
        method: ``scipy.optimize.minimize`` method (default BFGS).
        options: Extra options for the optimiser; default
            ``{"maxiter": 1000}``.
        compute_se: Compute Hessian-based standard errors (default True).
        ridge: Diagonal term added to the Hessian before inversion.
        hessian: ``"gradient"`` (differences of the analytic gradient) or
            ``"objective"`` (second differences of the objective).
        hessian_eps: Finite-difference step (1e-5 for gradient
            differences, 1e-4 for objective differences).
        max_condition: Largest accepted Hessian condition number.
        n_restarts: Extra random starts around *x0*; the best wins.
        restart_scale: Std of the normal perturbation for restarts, in
            standardised-column units.
        seed: Seed for restart perturbations.
        rng: Explicit generator for restart perturbations.
        first_order_tol: Standard errors are computed when the largest
            absolute score on the standardised scale is at most
            ``first_order_tol * max(1, |f|)``, whatever the optimiser's
            own convergence flag says.

    The optimiser runs on standardised covariate columns (see
    :class:`ColumnScaling`); estimates and the Hessian are reported on the
    original scale.

    Returns:
        MLEResult with estimates, standard errors and 95% intervals.

    Raises:
        ConfigurationError: Inconsistent inputs, before optimisation.
        NumericalInstabilityError: Singular Hessian at the optimum.
    """
    if hessian not in {"gradient", "objective"}:
        raise ConfigurationError(f"hessian must be 'gradient' or 'objective', got {hessian!r}")

    fam = resolve_family(data, family)
    names = list(data.param_names)
    start = resolve_initial_theta(x0, names)
    obj = build_objective(data, fam.name)
    grad = obj.gradient  # type: ignore[attr-defined]

    if options is None:
        options = {"maxiter": 1000}

    k = len(names)
    scaling = _design_scaling(data, k)
    scaled_obj, scaled_grad = scaling.wrap(obj, grad)

    logger.debug("%s MLE: %d params, %d units, method=%s", fam.name, k, fam.n_units(data), method)
    result = _minimize_with_restarts(
        scaled_obj,
        scaling.to_gamma(start),
        jac=scaled_grad,
        method=method,
        options=options,
        n_restarts=n_restarts,
        restart_scale=restart_scale,
        rng=rng,
        seed=seed,
    )

    theta_hat = scaling.to_beta(result.x)
    ll = -float(result.fun)
    if not np.isfinite(ll):
        raise EstimationError("Log-likelihood is not finite at the reported optimum")

    n_obs = fam.n_units(data)
    aic, bic = _compute_information_criteria(ll, k, n_obs)

    success = bool(result.success)
    stationary = _is_stationary(scaled_grad(result.x), result.fun, first_order_tol)
    if not success:
        if stationary:
            logger.info("optimizer stopped with '%s' at a stationary point", result.message)
        else:
            logger.warning("optimizer did not converge: %s", result.message)

    H = cov = se = ci = None
    if compute_se and stationary:
        eps = hessian_eps if hessian_eps is not None else (1e-5 if hessian == "gradient" else 1e-4)
        H, cov, se = _standard_errors(
            obj,
            theta_hat,
            hessian_eps=eps,
            gradient=grad if hessian == "gradient" else None,
            ridge=ridge,
            max_condition=max_condition,
            scaling=scaling,
        )
        ci = _wald_interval(theta_hat, se)
    elif compute_se:
        logger.warning("standard errors skipped: score is not close to zero at the estimate")

    return MLEResult(
        param_names=names,
        estimate=theta_hat,
        log_likelihood=ll,
        std_errors=se,
        conf_int=ci,
        hessian=H,
        covariance=cov,
        aic=aic,
        bic=bic,
        n_obs=n_obs,
        n_params=k,
        success=success,
        message=str(result.message),
        n_iterations=int(getattr(result, "nit", 0)),
        family=fam.name,
        method=method,
    )


def estimate_map(
    data: ModelData,
    priors: PriorInput,
    *,
    family: str | None = None,
    x0: NDArray[np.float64] | Mapping[str, float] | Sequence[float] | None = None,
    method: str = "BFGS",
    options: dict[str, Any] | None = None,
    compute_se: bool = True,
    prior_weight: float = 1.0,
    hessian_eps: float = 1e-5,
    max_condition: float = MAX_CONDITION,
    first_order_tol: float = 1e-5,
) -> MAPResult:
    """Estimate posterior mode (MAP): maximize log-likelihood + log-prior.

    Optimisation and standard errors follow :func:`estimate_mle`, with the
    analytic prior gradient added to the score.
    """
    fam = resolve_family(data, family)
    names = list(data.param_names)
    start = resolve_initial_theta(x0, names)

    nll_objective = build_objective(data, fam.name)
    log_prior = build_log_prior_evaluator(priors, names)
    log_posterior = build_log_posterior(nll_objective, log_prior, prior_weight=prior_weight)

    def map_objective(theta: NDArray[np.float64]) -> float:
        return -log_posterior(theta)

    def map_gradient(theta: NDArray[np.float64]) -> NDArray[np.float64]:
        return nll_objective.gradient(theta) - prior_weight * log_prior.gradient(theta)  # type: ignore[attr-defined]

    k = len(names)
    scaling = _design_scaling(data, k)
    scaled_obj, scaled_grad = scaling.wrap(map_objective, map_gradient)
    result = optimize.minimize(
        scaled_obj,
        scaling.to_gamma(start),
        jac=scaled_grad,
        method=method,
        options=options or {"maxiter": 1000},
    )

    theta_hat = scaling.to_beta(result.x)
    ll_hat = -float(nll_objective(theta_hat))
    lp_hat = float(log_prior(theta_hat))
    n_obs = fam.n_units(data)
    aic, bic = _compute_information_criteria(ll_hat, k, n_obs)

    success = bool(result.success)
    stationary = _is_stationary(scaled_grad(result.x), result.fun, first_order_tol)
    if not success:
        if stationary:
            logger.info("MAP optimizer stopped with '%s' at a stationary point", result.message)
        else:
            logger.warning("MAP optimizer did not converge: %s", result.message)

    H = cov = se = ci = None
    if compute_se and stationary:
        H, cov, se = _standard_errors(
            map_objective,
            theta_hat,
            hessian_eps=hessian_eps,
            gradient=map_gradient,
            ridge=0.0,
            max_condition=max_condition,
            scaling=scaling,
        )
        ci = _wald_interval(theta_hat, se)
    elif compute_se:
        logger.warning("standard errors skipped: posterior score is not close to zero")

    return MAPResult(
        param_names=names,
        estimate=theta_hat,
        log_likelihood=ll_hat,
        std_errors=se,
        conf_int=ci,
        hessian=H,
        covariance=cov,
        aic=aic,
        bic=bic,
        n_obs=n_obs,
        n_params=k,
        success=success,
        message=str(result.message),
        n_iterations=int(getattr(result, "nit", 0)),
        family=fam.name,
        method=method,
        log_prior=lp_hat,
        log_posterior=-float(result.fun),
    )


def estimate_rate(
    y: NDArray[np.float64] | Sequence[float],
    *,
    bounds: tuple[float, float] = (0.001, 10.0),
    xatol: float = 1e-8,
) -> RateResult:
    """MLE of a single Poisson rate by bounded scalar (Brent) search.

    The closed-form answer is the sample mean; this mirrors the numerical
    route so the two can be compared. Rates outside ``(0, inf)`` evaluate
    to ``-inf`` log-likelihood and are never selected.
    """
    y_arr = np.asarray(y, dtype=np.float64).reshape(-1)
    if y_arr.shape[0] == 0:
        raise ConfigurationError("y must contain at least one count")
    if np.any(y_arr < 0) or not np.all(np.isfinite(y_arr)):
        raise ConfigurationError("y must contain finite non-negative counts")
    lo, hi = float(bounds[0]), float(bounds[1])
    if not lo < hi:
        raise ConfigurationError(f"bounds must satisfy lower < upper, got {bounds}")

    result = optimize.minimize_scalar(
        neg_poisson_loglik_rate,
        bounds=(lo, hi),
        args=(y_arr,),
        method="bounded",
        options={"xatol": xatol},
    )
    rate = float(result.x)

    h = 1e-4 * max(1.0, abs(rate))
    if rate - h <= 0.0:
        h = 0.5 * rate
    f0 = neg_poisson_loglik_rate(rate, y_arr)
    curvature = (
        neg_poisson_loglik_rate(rate + h, y_arr) - 2.0 * f0 + neg_poisson_loglik_rate(rate - h, y_arr)
    ) / (h * h)
    if not np.isfinite(curvature) or curvature <= 0.0:
        raise NumericalInstabilityError(
            f"Second derivative at rate={rate:.6g} is not positive ({curvature:.3g})"
        )
    se = float(1.0 / np.sqrt(curvature))

    return RateResult(
        rate=rate,
        std_error=se,
        conf_int=(rate - Z_95 * se, rate + Z_95 * se),
        log_likelihood=poisson_loglik_rate(rate, y_arr),
        n_obs=int(y_arr.shape[0]),
        success=bool(result.success),
        message=str(getattr(result, "message", "")),
        n_iterations=int(getattr(result, "nfev", 0)),
        bounds=(lo, hi),
    )


def maximize_loglik(
    loglik_fn: Callable[[NDArray[np.float64], Any, Any], float],
    X: Any,
    Y: Any,
    beta0: NDArray[np.float64] | Sequence[float],
    *,
    method: str = "BFGS",
    options: dict[str, Any] | None = None,
    hessian_eps: float = 1e-4,
    ridge: float = 0.0,
) -> tuple[NDArray[np.float64], NDArray[np.float64], bool]:
    """Maximise an arbitrary ``loglik_fn(beta, X, Y)``.

    The gradient is approximated numerically by the optimiser and the
    Hessian by second differences of the negated log-likelihood. When *X*
    is a numeric matrix with one column per coefficient, the search runs
    on standardised columns as in :func:`estimate_mle`.

    Returns:
        ``(beta_hat, standard_errors, converged)``.

    Raises:
        ConfigurationError: If ``len(beta0)`` differs from the number of
            columns of *X*.
        NumericalInstabilityError: If the Hessian cannot be inverted.
    """
    x0 = np.asarray(beta0, dtype=np.float64).reshape(-1)
    X_arr = np.asarray(X)
    if X_arr.ndim == 2 and X_arr.shape[1] != x0.shape[0]:
        raise ConfigurationError(
            f"beta0 length ({x0.shape[0]}) must match X columns ({X_arr.shape[1]})"
        )

    def objective(beta: NDArray[np.float64]) -> float:
        ll = float(loglik_fn(beta, X, Y))
        return -ll if np.isfinite(ll) else float("inf")

    if X_arr.ndim == 2 and np.issubdtype(X_arr.dtype, np.number):
        scaling = ColumnScaling.from_design(X_arr)
    else:
        scaling = ColumnScaling.identity(x0.shape[0])
    scaled_obj, _ = scaling.wrap(objective)

    result = optimize.minimize(
        scaled_obj, scaling.to_gamma(x0), method=method, options=options or {"maxiter": 1000}
    )
    beta_hat = scaling.to_beta(result.x)
    _, _, se = _standard_errors(
        objective,
        beta_hat,
        hessian_eps=hessian_eps,
        gradient=None,
        ridge=ridge,
        max_condition=MAX_CONDITION,
        scaling=scaling,
    )
    return beta_hat, se, bool(result.success)
