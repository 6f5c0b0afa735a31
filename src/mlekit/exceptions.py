"""Exception hierarchy for mlekit."""

from __future__ import annotations


class MLEKitError(Exception):
    """Base class for all mlekit errors."""


class ConfigurationError(MLEKitError, ValueError):
    """Inputs are inconsistent (dimensions, task sizes, priors, controls).

    Raised before any optimizer or sampler iteration begins.
    """


class DomainError(MLEKitError):
    """A rate or probability parameter is outside its valid domain.

    Likelihood functions do not raise this; they return ``-inf`` so that
    optimizers can keep probing other points. It is raised only by the
    explicit ``check_*`` helpers.
    """


class NumericalInstabilityError(MLEKitError, ArithmeticError):
    """Hessian at the reported optimum is singular or not positive definite."""


class EstimationError(MLEKitError):
    """Estimation could not be carried out (e.g. invalid starting point)."""
