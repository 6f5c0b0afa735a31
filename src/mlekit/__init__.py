"""mlekit: maximum likelihood and Metropolis-Hastings estimation for
Poisson count and multinomial-logit choice models."""

from mlekit._version import __version__
from mlekit.estimation import (
    MAPResult,
    MCMCResult,
    MLEResult,
    RateResult,
    build_objective,
    estimate_map,
    estimate_mcmc,
    estimate_mle,
    estimate_rate,
    maximize_loglik,
    sample_posterior_mh,
)
from mlekit.exceptions import (
    ConfigurationError,
    DomainError,
    EstimationError,
    MLEKitError,
    NumericalInstabilityError,
)
from mlekit.io.config import EstimationConfig, load_config
from mlekit.model import ChoiceData, CountData, PriorSpec, build_design_matrix
from mlekit.simulate import simulate_choice_data, simulate_count_data

__all__ = [
    "__version__",
    # Data
    "ChoiceData",
    "CountData",
    "build_design_matrix",
    "PriorSpec",
    # Estimation
    "build_objective",
    "estimate_mle",
    "estimate_map",
    "estimate_rate",
    "maximize_loglik",
    "sample_posterior_mh",
    "estimate_mcmc",
    "MLEResult",
    "MAPResult",
    "RateResult",
    "MCMCResult",
    # Config
    "EstimationConfig",
    "load_config",
    # Simulation
    "simulate_count_data",
    "simulate_choice_data",
    # Errors
    "MLEKitError",
    "ConfigurationError",
    "DomainError",
    "NumericalInstabilityError",
    "EstimationError",
]
