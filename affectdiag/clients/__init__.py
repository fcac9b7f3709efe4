"""
affectdiag — Data Clients

Read-only access to the prototype lookup data every analysis runs against.
"""

from affectdiag.clients.registry import (
    LOOKUP_KEYS,
    DataRegistry,
    InMemoryDataRegistry,
    PrototypeCatalog,
    load_registry_from_yaml,
    require_registry,
)

__all__ = [
    "LOOKUP_KEYS",
    "DataRegistry",
    "InMemoryDataRegistry",
    "PrototypeCatalog",
    "load_registry_from_yaml",
    "require_registry",
]
