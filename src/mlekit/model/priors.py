"""Prior specifications for Bayesian estimation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

_PRIOR_ALIASES: dict[str, str] = {
    "normal": "normal",
    "normal_pdf": "normal",
    "gaussian": "normal",
    "flat": "flat",
    "uniform": "flat",
    "improper": "flat",
}

_SUPPORTED_PRIORS = frozenset({"normal", "flat"})


def normalize_prior_distribution(name: str) -> str:
    """Map prior aliases to canonical distribution names."""
    normalized = name.strip().lower()
    if normalized not in _PRIOR_ALIASES:
        supported = ", ".join(sorted(_SUPPORTED_PRIORS))
        raise ValueError(f"Unknown prior distribution '{name}'. Supported: {supported}")
    return _PRIOR_ALIASES[normalized]


@dataclass(frozen=True, slots=True)
class PriorSpec:
    """Independent prior on a single coefficient.

    ``normal`` priors are parameterised by mean and standard deviation;
    ``flat`` priors are improper and contribute zero to the log-posterior.
    """

    distribution: str = "normal"
    mean: float = 0.0
    std: float = 1.0

    def __post_init__(self) -> None:
        distribution = normalize_prior_distribution(self.distribution)
        mean = float(self.mean)
        std = float(self.std)

        if not math.isfinite(mean):
            raise ValueError(f"Prior mean must be finite, got {mean}")
        if not math.isfinite(std) or std <= 0.0:
            raise ValueError(f"Prior std must be finite and > 0, got {std}")

        object.__setattr__(self, "distribution", distribution)
        object.__setattr__(self, "mean", mean)
        object.__setattr__(self, "std", std)

    @property
    def variance(self) -> float:
        return self.std * self.std

    @classmethod
    def normal(cls, mean: float = 0.0, std: float = 1.0) -> PriorSpec:
        return cls("normal", mean, std)

    @classmethod
    def from_variance(cls, variance: float, mean: float = 0.0) -> PriorSpec:
        """Normal prior given its variance, e.g. ``from_variance(5.0)``."""
        variance = float(variance)
        if not math.isfinite(variance) or variance <= 0.0:
            raise ValueError(f"Prior variance must be finite and > 0, got {variance}")
        return cls("normal", mean, math.sqrt(variance))

    @classmethod
    def flat(cls) -> PriorSpec:
        return cls("flat", 0.0, 1.0)

    def logpdf(self, x: float) -> float:
        if self.distribution == "flat":
            return 0.0
        z = (x - self.mean) / self.std
        return -0.5 * math.log(2.0 * math.pi) - math.log(self.std) - 0.5 * z * z

    def to_dict(self) -> dict[str, float | str]:
        if self.distribution == "flat":
            return {"distribution": "flat"}
        return {
            "distribution": self.distribution,
            "mean": self.mean,
            "std": self.std,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PriorSpec:
        """Build from ``{distribution, mean, std | variance}``.

        ``distribution`` defaults to normal and ``mean`` to 0.
        """
        distribution = str(data.get("distribution", data.get("dist", "normal")))
        if normalize_prior_distribution(distribution) == "flat":
            return cls.flat()
        mean = float(data.get("mean", 0.0))
        if "std" in data and "variance" in data:
            raise ValueError("Prior dict must include only one of 'std' and 'variance'")
        if "variance" in data:
            return cls.from_variance(float(data["variance"]), mean=mean)
        if "std" not in data:
            raise ValueError("Prior dict must include 'std' or 'variance'")
        return cls(distribution, mean, float(data["std"]))


def parse_prior_spec(prior: PriorSpec | dict[str, Any] | float | str | None) -> PriorSpec | None:
    """Parse prior input from config forms.

    A bare number is read as the variance of a zero-mean normal prior, the
    way the conjoint analyses state their priors ("N(0, 5)").
    """
    if prior is None:
        return None
    if isinstance(prior, PriorSpec):
        return prior
    if isinstance(prior, dict):
        return PriorSpec.from_dict(prior)
    if isinstance(prior, str):
        if normalize_prior_distribution(prior) == "flat":
            return PriorSpec.flat()
        raise ValueError(f"Prior '{prior}' requires mean and std/variance")
    if isinstance(prior, (int, float)) and not isinstance(prior, bool):
        return PriorSpec.from_variance(float(prior))

    raise TypeError(f"Unsupported prior specification type: {type(prior)!r}")
