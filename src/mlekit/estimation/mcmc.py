"""Random-walk Metropolis-Hastings sampling of the coefficient posterior."""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from mlekit.estimation.likelihood import ModelData, build_objective, resolve_family
from mlekit.estimation.posterior import (
    PriorInput,
    build_log_posterior,
    build_log_prior_evaluator,
    resolve_initial_theta,
)
from mlekit.exceptions import ConfigurationError, EstimationError
from mlekit.logging_config import get_logger
from mlekit.model.priors import PriorSpec

logger = get_logger(__name__)

ProposalScale = float | Sequence[float] | NDArray[np.float64] | Mapping[str, float]


def _resolve_proposal_scale(
    proposal_scale: ProposalScale,
    param_names: list[str],
) -> NDArray[np.float64]:
    """Normalize proposal scale into a per-parameter std vector."""
    k = len(param_names)
    if isinstance(proposal_scale, Mapping):
        missing = [n for n in param_names if n not in proposal_scale]
        if missing:
            raise ConfigurationError(f"proposal_scale missing entries for {missing}")
        unknown = sorted(set(proposal_scale) - set(param_names))
        if unknown:
            raise ConfigurationError(f"proposal_scale given for unknown parameters: {unknown}")
        arr = np.array([float(proposal_scale[n]) for n in param_names], dtype=np.float64)
    elif np.isscalar(proposal_scale):
        arr = np.full(k, float(proposal_scale), dtype=np.float64)  # type: ignore[arg-type]
    else:
        arr = np.asarray(proposal_scale, dtype=np.float64).reshape(-1)
        if arr.shape[0] != k:
            raise ConfigurationError(
                f"proposal_scale length must match parameter count ({k}), got {arr.shape[0]}"
            )

    if not np.all(np.isfinite(arr)) or np.any(arr <= 0.0):
        raise ConfigurationError("proposal_scale must be finite and strictly positive")
    return arr


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


def _autocorrelation(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Normalised autocorrelation at lags 0..n-1 via FFT."""
    n = x.shape[0]
    centered = x - x.mean()
    size = 1 << (2 * n - 1).bit_length()
    spectrum = np.fft.rfft(centered, n=size)
    acov = np.fft.irfft(spectrum * np.conjugate(spectrum), n=size)[:n] / n
    return acov / acov[0]


def effective_sample_size(values: NDArray[np.float64]) -> float:
    """ESS with Geyer's initial monotone positive sequence truncation."""
    x = np.asarray(values, dtype=np.float64).reshape(-1)
    n = x.shape[0]
    if n <= 2 or not np.isfinite(x).all() or np.ptp(x) == 0.0:
        return float(n)

    rho = _autocorrelation(x)
    n_pairs = (n - 1) // 2
    if n_pairs == 0:
        return float(n)
    pairs = rho[1 : 2 * n_pairs : 2] + rho[2 : 2 * n_pairs + 1 : 2]

    positive = pairs > 0.0
    stop = int(np.argmin(positive)) if not positive.all() else pairs.shape[0]
    pairs = np.minimum.accumulate(pairs[:stop]) if stop > 0 else pairs[:0]

    tau = 1.0 + 2.0 * float(np.sum(pairs))
    if not np.isfinite(tau) or tau <= 0.0:
        return 1.0
    return float(np.clip(n / tau, 1.0, float(n)))


def split_rhat(samples: NDArray[np.float64]) -> tuple[NDArray[np.float64], str | None]:
    """Split-chain potential scale reduction for each column of *samples*."""
    arr = np.asarray(samples, dtype=np.float64)
    if arr.ndim != 2:
        raise ConfigurationError(f"samples must be 2D [n_samples, n_params], got ndim={arr.ndim}")
    n_samples, n_params = arr.shape
    half = n_samples // 2
    if half < 2:
        return np.full(n_params, np.nan), "R-hat unavailable: need >= 4 samples."

    halves = np.stack((arr[:half], arr[half : 2 * half]))
    within = halves.var(axis=1, ddof=1).mean(axis=0)
    between = half * halves.mean(axis=1).var(axis=0, ddof=1)
    pooled = ((half - 1.0) / half) * within + between / half

    with np.errstate(divide="ignore", invalid="ignore"):
        rhat = np.sqrt(pooled / within)
    rhat = np.where((within <= 1e-14) & (between <= 1e-14), 1.0, rhat)
    rhat = np.where(np.isfinite(rhat), rhat, np.nan)

    note = None
    if 2 * half != n_samples:
        note = "R-hat computed on an even-length prefix (one sample dropped)."
    return rhat, note


@dataclass
class MCMCDiagnostics:
    """Convergence diagnostics over post burn-in samples."""

    param_names: list[str]
    n_samples: int
    acceptance_rate: float
    ess: dict[str, float]
    r_hat: dict[str, float]
    notes: list[str]

    def summary(self) -> str:
        lines = [
            "MCMC Diagnostics",
            "=" * 50,
            f"  Saved samples:   {self.n_samples}",
            f"  Acceptance rate: {self.acceptance_rate:.3f}",
            "",
            f"  {'Parameter':<15} {'ESS':>12} {'R-hat':>12}",
            f"  {'-' * 15} {'-' * 12} {'-' * 12}",
        ]
        for name in self.param_names:
            rhat = self.r_hat[name]
            rhat_str = f"{rhat:12.4f}" if np.isfinite(rhat) else f"{'n/a':>12}"
            lines.append(f"  {name:<15} {self.ess[name]:12.1f} {rhat_str}")
        for note in self.notes:
            lines.append(f"  Note: {note}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------


@dataclass
class MCMCResult:
    """Output container for MH posterior sampling.

    ``chain`` holds every draw (``n_draws`` rows); ``samples`` is the
    retained suffix after discarding ``burn_in`` draws and thinning.
    """

    param_names: list[str]
    chain: NDArray[np.float64]
    log_posterior_chain: NDArray[np.float64]
    samples: NDArray[np.float64]
    log_posterior_samples: NDArray[np.float64]
    accepted: int
    acceptance_rate: float
    n_draws: int
    burn_in: int
    thin: int
    seed: int | None
    proposal_scale: NDArray[np.float64]
    family: str = ""
    _diagnostics_cache: MCMCDiagnostics | None = field(default=None, init=False, repr=False)

    def posterior_mean(self) -> dict[str, float]:
        means = self.samples.mean(axis=0)
        return dict(zip(self.param_names, means.tolist(), strict=True))

    def posterior_std(self) -> dict[str, float]:
        ddof = 1 if self.samples.shape[0] > 1 else 0
        stds = self.samples.std(axis=0, ddof=ddof)
        return dict(zip(self.param_names, stds.tolist(), strict=True))

    def credible_interval(self, level: float = 0.95) -> dict[str, tuple[float, float]]:
        """Equal-tailed interval from empirical percentiles of the samples."""
        if not 0.0 < level < 1.0:
            raise ConfigurationError(f"level must be in (0, 1), got {level}")
        tail = 50.0 * (1.0 - level)
        lo, hi = np.percentile(self.samples, [tail, 100.0 - tail], axis=0)
        return {
            name: (float(lo[i]), float(hi[i]))
            for i, name in enumerate(self.param_names)
        }

    def trace_dict(self, *, post_burn: bool = True) -> dict[str, NDArray[np.float64]]:
        """Return parameter traces as ``name -> vector``."""
        arr = self.samples if post_burn else self.chain
        return {name: arr[:, i].copy() for i, name in enumerate(self.param_names)}

    def to_frame(self, level: float = 0.95) -> pd.DataFrame:
        """Posterior summary table indexed by parameter name."""
        ci = self.credible_interval(level)
        tail = 50.0 * (1.0 - level)
        names = self.param_names
        means = self.posterior_mean()
        stds = self.posterior_std()
        return pd.DataFrame(
            {
                "mean": [means[n] for n in names],
                "std": [stds[n] for n in names],
                f"q{tail:g}": [ci[n][0] for n in names],
                f"q{100.0 - tail:g}": [ci[n][1] for n in names],
            },
            index=pd.Index(names, name="parameter"),
        )

    def diagnostics(self) -> MCMCDiagnostics:
        """Compute (and cache) ESS and split R-hat."""
        if self._diagnostics_cache is not None:
            return self._diagnostics_cache

        rhat_values, rhat_note = split_rhat(self.samples)
        diag = MCMCDiagnostics(
            param_names=list(self.param_names),
            n_samples=int(self.samples.shape[0]),
            acceptance_rate=float(self.acceptance_rate),
            ess={
                name: effective_sample_size(self.samples[:, i])
                for i, name in enumerate(self.param_names)
            },
            r_hat=dict(zip(self.param_names, rhat_values.tolist(), strict=True)),
            notes=[rhat_note] if rhat_note else [],
        )
        self._diagnostics_cache = diag
        return diag

    def summary(self) -> str:
        diag = self.diagnostics()
        means = self.posterior_mean()
        stds = self.posterior_std()
        ci = self.credible_interval()
        lines = [
            "Metropolis-Hastings MCMC",
            "=" * 79,
            f"  Draws:           {self.n_draws}",
            f"  Burn-in:         {self.burn_in}",
            f"  Thin:            {self.thin}",
            f"  Saved samples:   {self.samples.shape[0]}",
            f"  Acceptance rate: {self.acceptance_rate:.3f}",
            "",
            f"  {'Parameter':<15} {'Mean':>10} {'Std':>10} {'2.5%':>10} {'97.5%':>10} "
            f"{'ESS':>8} {'R-hat':>8}",
            f"  {'-' * 15} {'-' * 10} {'-' * 10} {'-' * 10} {'-' * 10} {'-' * 8} {'-' * 8}",
        ]
        for name in self.param_names:
            rhat = diag.r_hat[name]
            rhat_str = f"{rhat:8.4f}" if np.isfinite(rhat) else f"{'n/a':>8}"
            lo, hi = ci[name]
            lines.append(
                f"  {name:<15} {means[name]:10.4f} {stds[name]:10.4f} {lo:10.4f} {hi:10.4f} "
                f"{diag.ess[name]:8.1f} {rhat_str}"
            )
        for note in diag.notes:
            lines.append(f"  Note: {note}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------


def metropolis_hastings(
    log_target: Callable[[NDArray[np.float64]], float],
    x0: NDArray[np.float64],
    *,
    n_draws: int,
    proposal_scale: NDArray[np.float64],
    rng: np.random.Generator,
) -> tuple[NDArray[np.float64], NDArray[np.float64], int]:
    """Run one random-walk MH chain.

    Each iteration proposes ``current + N(0, diag(proposal_scale**2))`` and
    accepts iff ``log(U) < log_target(proposal) - log_target(current)``.
    The current state is recorded every iteration, accepted or not.

    Returns:
        ``(chain, log_target_chain, n_accepted)`` with ``n_draws`` rows.
    """
    current = np.asarray(x0, dtype=np.float64).copy()
    k = current.shape[0]
    current_logp = float(log_target(current))
    if not np.isfinite(current_logp):
        raise EstimationError(
            "Initial point has non-finite log posterior; adjust initial_theta or priors"
        )

    chain = np.empty((n_draws, k), dtype=np.float64)
    logp_chain = np.empty(n_draws, dtype=np.float64)
    accepted = 0

    for t in range(n_draws):
        proposal = current + rng.normal(loc=0.0, scale=proposal_scale, size=k)
        proposal_logp = float(log_target(proposal))

        if np.isfinite(proposal_logp) and math.log(rng.uniform()) < proposal_logp - current_logp:
            current = proposal
            current_logp = proposal_logp
            accepted += 1

        chain[t] = current
        logp_chain[t] = current_logp

    return chain, logp_chain, accepted


def sample_posterior_mh(
    data: ModelData,
    priors: PriorInput,
    *,
    family: str | None = None,
    n_draws: int = 11000,
    burn_in: int = 1000,
    thin: int = 1,
    proposal_scale: ProposalScale = 0.05,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    initial_theta: NDArray[np.float64] | Mapping[str, float] | Sequence[float] | None = None,
    default_prior: PriorSpec | None = None,
    prior_weight: float = 1.0,
) -> MCMCResult:
    """Sample the coefficient posterior with random-walk Metropolis-Hastings.

    The target is ``log L(beta) + prior_weight * log p(beta)`` with
    independent priors per coefficient.

    Args:
        data: ``CountData`` (Poisson) or ``ChoiceData`` (MNL).
        priors: One prior for all coefficients, a ``name -> prior``
            mapping, or a sequence aligned with ``data.param_names``. Bare
            numbers are variances of zero-mean normal priors.
        family: Override family inference.
        n_draws: Total iterations, burn-in included.
        burn_in: Leading draws discarded from ``samples``.
        thin: Keep every ``thin``-th draw after burn-in.
        proposal_scale: Random-walk std; scalar, sequence, or mapping.
        seed: Seed used to build the generator when *rng* is not given.
        rng: Explicit random source.
        initial_theta: Starting point (zeros by default).
        default_prior: Prior for coefficients absent from a mapping.
        prior_weight: Multiplier on the log prior.

    Raises:
        ConfigurationError: Invalid controls, priors or dimensions.
        EstimationError: Non-finite log posterior at the starting point.
    """
    if n_draws < 1:
        raise ConfigurationError(f"n_draws must be >= 1, got {n_draws}")
    if burn_in < 0 or burn_in >= n_draws:
        raise ConfigurationError(f"burn_in must satisfy 0 <= burn_in < n_draws, got {burn_in}")
    if thin < 1:
        raise ConfigurationError(f"thin must be >= 1, got {thin}")

    fam = resolve_family(data, family)
    names = list(data.param_names)
    scales = _resolve_proposal_scale(proposal_scale, names)
    x0 = resolve_initial_theta(initial_theta, names)

    nll_objective = build_objective(data, fam.name, cache=False)
    log_prior = build_log_prior_evaluator(priors, names, default=default_prior)
    log_posterior = build_log_posterior(nll_objective, log_prior, prior_weight=prior_weight)

    generator = rng if rng is not None else np.random.default_rng(seed)
    chain, logp_chain, accepted = metropolis_hastings(
        log_posterior,
        x0,
        n_draws=n_draws,
        proposal_scale=scales,
        rng=generator,
    )

    acceptance_rate = accepted / float(n_draws)
    logger.debug("%s MH: %d draws, acceptance rate %.3f", fam.name, n_draws, acceptance_rate)
    if acceptance_rate == 0.0 or acceptance_rate == 1.0:
        logger.warning(
            "acceptance rate %.3f; proposal_scale is likely mis-tuned", acceptance_rate
        )

    return MCMCResult(
        param_names=names,
        chain=chain,
        log_posterior_chain=logp_chain,
        samples=chain[burn_in::thin, :],
        log_posterior_samples=logp_chain[burn_in::thin],
        accepted=accepted,
        acceptance_rate=acceptance_rate,
        n_draws=n_draws,
        burn_in=burn_in,
        thin=thin,
        seed=seed,
        proposal_scale=scales,
        family=fam.name,
    )


def estimate_mcmc(*args: Any, **kwargs: Any) -> MCMCResult:
    """Alias for ``sample_posterior_mh``."""
    return sample_posterior_mh(*args, **kwargs)
