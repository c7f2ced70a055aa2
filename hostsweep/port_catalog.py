"""
Static lookup table of well-known TCP ports and their service names.
"""
from __future__ import annotations
import json
import logging
import os
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

BUNDLED_CATALOG_PATH = os.path.join(os.path.dirname(__file__), "port_services.json")


class PortCatalog(Mapping[int, str]):
    """Read-only port -> service name mapping, iterated in ascending port order."""

    def __init__(self, entries: Mapping[Any, Any]):
        table: Dict[int, str] = {}
        for raw_port, name in entries.items():
            try:
                port = int(raw_port)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid port '{raw_port}' in port catalog.")
            if not 0 < port < 65536:
                raise ValueError(f"Port {port} in port catalog is out of range (1-65535).")
            table[port] = str(name)
        self._table = MappingProxyType(dict(sorted(table.items())))

    def __getitem__(self, port: int) -> str:
        return self._table[port]

    def __iter__(self) -> Iterator[int]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def items_in_order(self) -> Tuple[Tuple[int, str], ...]:
        return tuple(self._table.items())

    def __repr__(self) -> str:
        return f"PortCatalog({len(self)} ports)"


def load_port_catalog(path: Optional[str] = None) -> PortCatalog:
    """
    Loads a port catalog.

    Without a path the bundled port_services.json is used. A user-supplied
    file may be JSON or YAML and must map port numbers to service names.
    """
    if path is None:
        with open(BUNDLED_CATALOG_PATH, 'r') as f:
            entries = json.load(f)
    else:
        try:
            with open(path, 'r') as f:
                entries = yaml.safe_load(f)
        except (IOError, yaml.YAMLError) as e:
            raise ValueError(f"Could not load port catalog from '{path}': {e}")
        if not isinstance(entries, dict):
            raise ValueError(f"Port catalog '{path}' must be a mapping of port numbers to service names.")

    catalog = PortCatalog(entries)
    logger.debug(f"Loaded {len(catalog)} port service mappings from {path or BUNDLED_CATALOG_PATH}")
    return catalog


_default_catalog: Optional[PortCatalog] = None


def default_catalog() -> PortCatalog:
    """Returns the bundled catalog, loading it on first use."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = load_port_catalog()
    return _default_catalog
