import yaml
from typing import Any, Dict


class ConfigNotFoundError(Exception):
    """Custom exception for configuration not found errors."""
    pass


def load_yaml(yaml_file_path: str) -> Dict[str, Any]:
    """
    Read a YAML file into a dictionary.

    Raises:
        FileNotFoundError: If the YAML file cannot be found
        yaml.YAMLError: If the YAML file is malformed
    """
    try:
        with open(yaml_file_path, 'r') as file:
            data = yaml.safe_load(file)
    except FileNotFoundError:
        raise FileNotFoundError(f"YAML file not found at path: {yaml_file_path}")
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Error parsing YAML file: {e}")

    return data or {}


def get_controller_section(yaml_file_path: str, section: str = "controller") -> Dict[str, Any]:
    """
    Return the controller settings stored under ``section`` in a YAML file.

    Args:
        yaml_file_path: Path to the YAML configuration file
        section: Top-level key holding the controller settings

    Returns:
        Dict[str, Any]: Settings keyed by ControllerConfig field name

    Raises:
        ConfigNotFoundError: If the section is missing or not a mapping
    """
    config = load_yaml(yaml_file_path)

    if not isinstance(config, dict) or section not in config:
        raise ConfigNotFoundError(f"'{section}' key not found in configuration {yaml_file_path}")

    settings = config[section]
    if settings is None:
        return {}
    if not isinstance(settings, dict):
        raise ConfigNotFoundError(
            f"'{section}' in {yaml_file_path} must be a mapping, got {type(settings).__name__}"
        )
    return settings
