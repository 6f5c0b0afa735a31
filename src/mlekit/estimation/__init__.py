"""Estimation: likelihood objectives, MLE/MAP optimization, and MCMC posterior sampling."""

from mlekit.estimation.likelihood import FAMILIES, LikelihoodFamily, build_objective, resolve_family
from mlekit.estimation.mcmc import (
    MCMCDiagnostics,
    MCMCResult,
    effective_sample_size,
    estimate_mcmc,
    metropolis_hastings,
    sample_posterior_mh,
    split_rhat,
)
from mlekit.estimation.mle import (
    MAPResult,
    MLEResult,
    RateResult,
    compute_hessian,
    covariance_from_hessian,
    estimate_map,
    estimate_mle,
    estimate_rate,
    maximize_loglik,
)
from mlekit.estimation.posterior import (
    build_log_posterior,
    build_log_prior_evaluator,
    resolve_initial_theta,
)

__all__ = [
    "FAMILIES",
    "LikelihoodFamily",
    "build_objective",
    "resolve_family",
    "MLEResult",
    "MAPResult",
    "RateResult",
    "MCMCDiagnostics",
    "MCMCResult",
    "compute_hessian",
    "covariance_from_hessian",
    "estimate_mle",
    "estimate_map",
    "estimate_rate",
    "maximize_loglik",
    "metropolis_hastings",
    "sample_posterior_mh",
    "estimate_mcmc",
    "effective_sample_size",
    "split_rhat",
    "build_log_posterior",
    "build_log_prior_evaluator",
    "resolve_initial_theta",
]
