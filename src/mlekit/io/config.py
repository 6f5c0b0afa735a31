"""YAML estimation configuration.

A small, readable format describing one estimation run:

```yaml
family: mnl
data: conjoint.csv
chosen: choice
task_keys: [resp, task]
covariates: [brand, ad, price]
categorical: [brand]

method: mcmc

priors:
  default: {variance: 5}
  price: {variance: 1}

mcmc:
  draws: 11000
  burn_in: 1000
  proposal_scale:
    default: 0.05
    price: 0.005
  seed: 42
```

Poisson runs use ``outcome`` instead of ``chosen``/``task_keys`` and may
list ``squared`` columns. Optimizer settings live under ``optimizer``
(``method``, ``maxiter``, ``restarts``, ``ridge``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from mlekit.exceptions import ConfigurationError
from mlekit.model.data import ChoiceData, CountData
from mlekit.model.priors import PriorSpec, parse_prior_spec

_METHODS = frozenset({"mle", "map", "mcmc"})
_FAMILIES = frozenset({"poisson", "mnl"})
_OPTIMIZER_KEYS = frozenset({"method", "maxiter", "restarts", "ridge"})
_MCMC_KEYS = frozenset({"draws", "burn_in", "thin", "seed", "proposal_scale"})


def _check_int(section: dict[str, Any], key: str, where: str, *, minimum: int) -> None:
    if key not in section:
        return
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{where}.{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{where}.{key} must be >= {minimum}, got {value}")


def _check_number(section: dict[str, Any], key: str, where: str, *, minimum: float) -> None:
    if key not in section:
        return
    value = section[key]
    # PyYAML reads exponent forms such as 1e-3 as strings.
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            raise ConfigurationError(f"{where}.{key} must be a number, got {section[key]!r}") from None
        section[key] = value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"{where}.{key} must be a number, got {value!r}")
    if not math.isfinite(value) or value < minimum:
        raise ConfigurationError(f"{where}.{key} must be finite and >= {minimum}, got {value}")


@dataclass
class EstimationConfig:
    """Parsed estimation configuration.

    Attributes:
        family: ``"poisson"`` or ``"mnl"``.
        data: CSV path (resolved against the config file's directory).
        covariates: Columns entering the design matrix.
        outcome: Count column (Poisson).
        chosen: 0/1 choice column (MNL).
        task_keys: Columns identifying a choice task (MNL).
        categorical: Covariates to indicator-encode.
        squared: Columns whose square is appended (Poisson).
        intercept: Include an intercept column; defaults to True for
            Poisson and False for MNL.
        method: ``"mle"``, ``"map"`` or ``"mcmc"``.
        optimizer: Optimizer settings.
        priors: ``name -> prior`` entries; ``default`` applies to the rest.
        mcmc: Sampler settings.
    """

    family: str
    data: Path
    covariates: list[str]
    outcome: str | None = None
    chosen: str | None = None
    task_keys: list[str] = field(default_factory=list)
    categorical: list[str] = field(default_factory=list)
    squared: list[str] = field(default_factory=list)
    intercept: bool | None = None
    method: str = "mle"
    optimizer: dict[str, Any] = field(default_factory=dict)
    priors: dict[str, Any] = field(default_factory=dict)
    mcmc: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.family = str(self.family).strip().lower()
        self.method = str(self.method).strip().lower()
        if self.family not in _FAMILIES:
            raise ConfigurationError(
                f"Unknown family '{self.family}'. Supported: {', '.join(sorted(_FAMILIES))}"
            )
        if self.method not in _METHODS:
            raise ConfigurationError(
                f"Unknown method '{self.method}'. Supported: {', '.join(sorted(_METHODS))}"
            )
        if not self.covariates:
            raise ConfigurationError("covariates must list at least one column")
        if self.family == "poisson" and not self.outcome:
            raise ConfigurationError("Poisson configuration requires 'outcome'")
        if self.family == "mnl":
            if not self.chosen:
                raise ConfigurationError("MNL configuration requires 'chosen'")
            if not self.task_keys:
                raise ConfigurationError("MNL configuration requires 'task_keys'")
            if self.squared:
                raise ConfigurationError("'squared' is only supported for Poisson models")
        if self.intercept is None:
            self.intercept = self.family == "poisson"
        self._validate_optimizer()
        self._validate_mcmc()

    def _validate_optimizer(self) -> None:
        unknown = sorted(set(self.optimizer) - _OPTIMIZER_KEYS)
        if unknown:
            raise ConfigurationError(f"Unknown optimizer keys: {unknown}")
        if "method" in self.optimizer and not isinstance(self.optimizer["method"], str):
            raise ConfigurationError("optimizer.method must be a string")
        _check_int(self.optimizer, "maxiter", "optimizer", minimum=1)
        _check_int(self.optimizer, "restarts", "optimizer", minimum=0)
        _check_number(self.optimizer, "ridge", "optimizer", minimum=0.0)

    def _validate_mcmc(self) -> None:
        unknown = sorted(set(self.mcmc) - _MCMC_KEYS)
        if unknown:
            raise ConfigurationError(f"Unknown mcmc keys: {unknown}")
        _check_int(self.mcmc, "draws", "mcmc", minimum=1)
        _check_int(self.mcmc, "burn_in", "mcmc", minimum=0)
        _check_int(self.mcmc, "thin", "mcmc", minimum=1)
        if self.mcmc.get("seed") is not None:
            _check_int(self.mcmc, "seed", "mcmc", minimum=0)
        scale = self.mcmc.get("proposal_scale")
        if isinstance(scale, dict):
            scale = self.mcmc["proposal_scale"] = dict(scale)
            for name in scale:
                _check_number(scale, name, "mcmc.proposal_scale", minimum=0.0)
        elif scale is not None:
            _check_number(self.mcmc, "proposal_scale", "mcmc", minimum=0.0)

    # -- data ---------------------------------------------------------------

    def load_frame(self) -> pd.DataFrame:
        if not self.data.exists():
            raise ConfigurationError(f"Data file not found: {self.data}")
        return pd.read_csv(self.data)

    def build_data(self, frame: pd.DataFrame | None = None) -> CountData | ChoiceData:
        """Read the CSV (unless *frame* is given) and build the data container."""
        df = self.load_frame() if frame is None else frame
        if self.family == "poisson":
            return CountData.from_frame(
                df,
                self.outcome,
                self.covariates,
                categorical=self.categorical,
                squared=self.squared,
                intercept=bool(self.intercept),
            )
        return ChoiceData.from_frame(
            df,
            self.chosen,
            self.covariates,
            self.task_keys,
            categorical=self.categorical,
            intercept=bool(self.intercept),
        )

    # -- estimation controls ------------------------------------------------

    def resolve_priors(self, param_names: list[str]) -> dict[str, PriorSpec]:
        """One prior per parameter; entries missing a prior fall back to ``default``."""
        default = self._parse_prior(self.priors.get("default"), "default")
        unknown = sorted(set(self.priors) - set(param_names) - {"default"})
        if unknown:
            raise ConfigurationError(
                f"Priors given for unknown parameters: {unknown}. Available: {param_names}"
            )
        resolved: dict[str, PriorSpec] = {}
        for name in param_names:
            prior = self._parse_prior(self.priors.get(name), name) or default
            if prior is None:
                raise ConfigurationError(f"Missing prior for '{name}' and no default prior given")
            resolved[name] = prior
        return resolved

    def resolve_proposal_scale(self, param_names: list[str]) -> dict[str, float]:
        raw = self.mcmc.get("proposal_scale", 0.05)
        if not isinstance(raw, dict):
            return {name: float(raw) for name in param_names}
        default = raw.get("default")
        unknown = sorted(set(raw) - set(param_names) - {"default"})
        if unknown:
            raise ConfigurationError(f"proposal_scale given for unknown parameters: {unknown}")
        out: dict[str, float] = {}
        for name in param_names:
            value = raw.get(name, default)
            if value is None:
                raise ConfigurationError(f"Missing proposal_scale for '{name}'")
            out[name] = float(value)
        return out

    def optimizer_options(self) -> dict[str, Any]:
        return {"maxiter": int(self.optimizer.get("maxiter", 1000))}

    @staticmethod
    def _parse_prior(raw: Any, name: str) -> PriorSpec | None:
        try:
            return parse_prior_spec(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid prior for '{name}': {exc}") from exc


def _as_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    raise ConfigurationError(f"'{key}' must be a string or a list, got {type(value).__name__}")


def config_from_dict(data: dict[str, Any], base_dir: str | Path | None = None) -> EstimationConfig:
    """Build an ``EstimationConfig`` from a YAML-like dict.

    Relative ``data`` paths are resolved against *base_dir*.
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping")
    for key in ("family", "data", "covariates"):
        if key not in data:
            raise ConfigurationError(f"Configuration is missing required key '{key}'")

    known = {
        "family", "data", "covariates", "outcome", "chosen", "task_keys",
        "categorical", "squared", "intercept", "method", "optimizer", "priors", "mcmc",
    }
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {unknown}")

    data_path = Path(str(data["data"]))
    if base_dir is not None and not data_path.is_absolute():
        data_path = Path(base_dir) / data_path

    for section in ("optimizer", "priors", "mcmc"):
        if data.get(section) is not None and not isinstance(data[section], dict):
            raise ConfigurationError(f"'{section}' must be a mapping")

    return EstimationConfig(
        family=data["family"],
        data=data_path,
        covariates=_as_list(data["covariates"], "covariates"),
        outcome=data.get("outcome"),
        chosen=data.get("chosen"),
        task_keys=_as_list(data.get("task_keys"), "task_keys"),
        categorical=_as_list(data.get("categorical"), "categorical"),
        squared=_as_list(data.get("squared"), "squared"),
        intercept=data.get("intercept"),
        method=data.get("method", "mle"),
        optimizer=dict(data.get("optimizer") or {}),
        priors=dict(data.get("priors") or {}),
        mcmc=dict(data.get("mcmc") or {}),
    )


def load_config(path: str | Path) -> EstimationConfig:
    """Load an estimation configuration from a YAML file."""
    try:
        import yaml
    except ImportError as exc:
        raise ImportError(
            "PyYAML is required for YAML configuration. "
            "Install with: pip install pyyaml"
        ) from exc

    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    return config_from_dict(data, base_dir=path.parent)


def config_to_yaml(config: EstimationConfig) -> str:
    """Serialize a configuration back to YAML."""
    import yaml

    out: dict[str, Any] = {
        "family": config.family,
        "data": str(config.data),
        "covariates": list(config.covariates),
        "method": config.method,
        "intercept": bool(config.intercept),
    }
    for key in ("outcome", "chosen"):
        value = getattr(config, key)
        if value:
            out[key] = value
    for key in ("task_keys", "categorical", "squared"):
        value = getattr(config, key)
        if value:
            out[key] = list(value)
    for key in ("optimizer", "priors", "mcmc"):
        value = getattr(config, key)
        if value:
            out[key] = value
    return yaml.safe_dump(out, default_flow_style=False, sort_keys=False)
