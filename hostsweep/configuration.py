# hostsweep/configuration.py

"""
Configuration loader for hostsweep.

Handles loading settings from config.yaml. If the file doesn't exist,
it creates one with default values.
"""

import copy
import sys
from typing import Any, Dict, Optional

import yaml

from .models import PORT_CONNECT_TIMEOUT_MS

OUTPUT_FORMATS = ('table', 'csv', 'json')

# Default structure and values; also used to generate the initial config.yaml.
DEFAULT_CONFIG: Dict[str, Any] = {
    'interval_ms': 30,
    'port_connect_timeout_ms': PORT_CONNECT_TIMEOUT_MS,
    'max_inflight_probes': 128,
    # Bounds for the port scan: ports probed at once per host, and hosts at once
    'port_workers_per_host': 16,
    'port_hosts_in_parallel': 4,
    'resolve_names': True,
    'trace_route': False,
    'trace_max_hops': 30,
    'output_format': 'table',  # Options: table, csv, json
    'raw_output': False,
    # Path to a JSON/YAML port -> service mapping; null uses the bundled catalog
    'port_catalog_file': None,
}

_HEADER = (
    "# hostsweep Configuration File\n"
    "# You can edit these settings. Command-line options override them.\n\n"
)


def get_config_path() -> str:
    """Returns the default path to the config file."""
    return "config.yaml"


def save_config(config: Dict[str, Any], path: Optional[str] = None):
    """Saves the provided configuration dictionary to a YAML file."""
    config_path = path or get_config_path()
    try:
        with open(config_path, 'w') as f:
            f.write(_HEADER)
            yaml.dump(config, f, sort_keys=False, default_flow_style=False, indent=2)
    except IOError as e:
        print(f"ERROR: Could not write config file to '{config_path}': {e}", file=sys.stderr)


def _positive_int(config: Dict[str, Any], key: str) -> None:
    value = config.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{key}' must be a positive integer, got {value!r}.")


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Checks value types and ranges. Raises ValueError on the first problem found."""
    for key in ('interval_ms', 'max_inflight_probes', 'port_workers_per_host',
                'port_hosts_in_parallel', 'trace_max_hops', 'port_connect_timeout_ms'):
        _positive_int(config, key)
    if config['port_connect_timeout_ms'] > PORT_CONNECT_TIMEOUT_MS:
        raise ValueError(
            f"'port_connect_timeout_ms' cannot exceed {PORT_CONNECT_TIMEOUT_MS}, "
            f"got {config['port_connect_timeout_ms']}."
        )
    if config.get('output_format') not in OUTPUT_FORMATS:
        raise ValueError(
            f"'output_format' must be one of {', '.join(OUTPUT_FORMATS)}, got {config.get('output_format')!r}."
        )
    catalog_file = config.get('port_catalog_file')
    if catalog_file is not None and not isinstance(catalog_file, str):
        raise ValueError(f"'port_catalog_file' must be a path or null, got {catalog_file!r}.")
    return config


def load_or_create_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads configuration from a YAML file (config.yaml by default).

    If the file doesn't exist, it creates it with default values.
    If the file is invalid, it reports the error and exits.
    """
    config_path = path or get_config_path()
    try:
        with open(config_path, 'r') as f:
            user_config = yaml.safe_load(f)

        # Merge user config with defaults to ensure all keys are present
        config = copy.deepcopy(DEFAULT_CONFIG)
        if isinstance(user_config, dict):
            config.update(user_config)
        return config

    except FileNotFoundError:
        print(f"Configuration file not found. Creating '{config_path}' with default settings.", file=sys.stderr)
        try:
            with open(config_path, 'w') as f:
                f.write(_HEADER)
                yaml.dump(DEFAULT_CONFIG, f, sort_keys=False, default_flow_style=False, indent=2)
        except IOError as e:
            print(f"WARNING: Could not write default config file to '{config_path}': {e}", file=sys.stderr)
        return copy.deepcopy(DEFAULT_CONFIG)

    except yaml.YAMLError as e:
        print(f"FATAL: Error parsing '{config_path}': {e}", file=sys.stderr)
        sys.exit(1)
