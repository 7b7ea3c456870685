"""
Configuration utilities for building the controller configuration.
"""

from typing import Any, Dict, Optional

from ..models import ControllerConfig
from .yamler import get_controller_section


def load_controller_config(
    config_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ControllerConfig:
    """
    Build the controller configuration.

    Values come from the model defaults, then the ``controller`` section of
    the YAML file when one is given, then ``overrides``. Override entries
    set to None are ignored so unset command line flags keep file values.

    Raises:
        ConfigNotFoundError: If the file has no ``controller`` section
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If a value is invalid
    """
    values: Dict[str, Any] = {}
    if config_file:
        values.update(get_controller_section(config_file))

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    return ControllerConfig(**values)
