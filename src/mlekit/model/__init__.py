"""Data containers and prior specifications."""

from mlekit.model.data import ChoiceData, CountData, build_design_matrix
from mlekit.model.priors import PriorSpec, parse_prior_spec

__all__ = [
    "ChoiceData",
    "CountData",
    "build_design_matrix",
    "PriorSpec",
    "parse_prior_spec",
]
