"""Log-likelihood functions for Poisson and multinomial-logit models."""

from mlekit.likelihood.mnl import (
    mnl_loglik,
    mnl_loglik_arrays,
    mnl_probabilities,
    mnl_score,
    mnl_utilities,
    neg_mnl_loglik,
    task_log_softmax,
    task_softmax,
)
from mlekit.likelihood.poisson import (
    check_rate,
    neg_poisson_loglik,
    neg_poisson_loglik_rate,
    poisson_loglik,
    poisson_loglik_rate,
    poisson_rates,
    poisson_score,
)

__all__ = [
    "check_rate",
    "mnl_loglik",
    "mnl_loglik_arrays",
    "mnl_probabilities",
    "mnl_score",
    "mnl_utilities",
    "neg_mnl_loglik",
    "neg_poisson_loglik",
    "neg_poisson_loglik_rate",
    "poisson_loglik",
    "poisson_loglik_rate",
    "poisson_rates",
    "poisson_score",
    "task_log_softmax",
    "task_softmax",
]
