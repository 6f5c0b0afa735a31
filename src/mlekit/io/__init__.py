"""Reading estimation configurations."""

from mlekit.io.config import EstimationConfig, config_from_dict, config_to_yaml, load_config

__all__ = ["EstimationConfig", "config_from_dict", "config_to_yaml", "load_config"]
