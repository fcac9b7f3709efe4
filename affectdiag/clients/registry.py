"""
affectdiag — Prototype Data Registry

The analysers read prototype definitions through a lookup-data registry:
``get_lookup_data("core:emotion_prototypes")`` returns ``{"entries": {id:
{"weights": {...}, "gates": [...]}}}``. A missing lookup simply means "no
prototypes of that type".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml

from affectdiag.primitives.common import PrototypeType
from affectdiag.primitives.prototype import WeightedPrototype

logger = structlog.get_logger("affectdiag.clients.registry")

LOOKUP_KEYS: dict[PrototypeType, str] = {
    PrototypeType.EMOTION: "core:emotion_prototypes",
    PrototypeType.SEXUAL: "core:sexual_prototypes",
}

# Variable-path roots that reference each prototype type in expressions
VAR_ROOTS: dict[PrototypeType, str] = {
    PrototypeType.EMOTION: "emotions",
    PrototypeType.SEXUAL: "sexualStates",
}


class DataRegistry(ABC):
    """Abstract read-only lookup-data source."""

    @abstractmethod
    def get_lookup_data(self, key: str) -> Mapping[str, Any] | None:
        """Return the lookup payload for ``key``, or None when it is absent."""
        ...


class InMemoryDataRegistry(DataRegistry):
    def __init__(self, lookups: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._lookups: dict[str, Mapping[str, Any]] = dict(lookups or {})

    @classmethod
    def from_prototypes(
        cls,
        emotions: Mapping[str, Mapping[str, Any]] | None = None,
        sexual: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> InMemoryDataRegistry:
        lookups: dict[str, Mapping[str, Any]] = {}
        if emotions is not None:
            lookups[LOOKUP_KEYS[PrototypeType.EMOTION]] = {"entries": dict(emotions)}
        if sexual is not None:
            lookups[LOOKUP_KEYS[PrototypeType.SEXUAL]] = {"entries": dict(sexual)}
        return cls(lookups)

    def register(self, key: str, payload: Mapping[str, Any]) -> None:
        self._lookups[key] = payload

    def get_lookup_data(self, key: str) -> Mapping[str, Any] | None:
        return self._lookups.get(key)


def load_registry_from_yaml(path: str | Path) -> InMemoryDataRegistry:
    """
    Load prototypes from a YAML file with ``emotions:`` and ``sexual:`` maps
    of ``id -> {weights, gates}``.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Prototype file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    registry = InMemoryDataRegistry.from_prototypes(
        emotions=raw.get("emotions"),
        sexual=raw.get("sexual"),
    )
    logger.info(
        "prototype_registry_loaded",
        path=str(path),
        emotions=len(raw.get("emotions") or {}),
        sexual=len(raw.get("sexual") or {}),
    )
    return registry


def require_registry(registry: Any, owner: str) -> None:
    """Fail fast when a collaborator lacks ``get_lookup_data``."""
    if registry is None or not callable(getattr(registry, "get_lookup_data", None)):
        raise TypeError(f"{owner} requires a data registry with a get_lookup_data method")


class PrototypeCatalog:
    """
    Typed view over a registry. Parses entries into ``WeightedPrototype``
    once per catalog; build a fresh catalog per analysis call.
    """

    def __init__(self, registry: DataRegistry) -> None:
        require_registry(registry, "PrototypeCatalog")
        self._registry = registry
        self._cache: dict[PrototypeType, dict[str, WeightedPrototype]] = {}

    def prototypes(self, prototype_type: PrototypeType) -> dict[str, WeightedPrototype]:
        if prototype_type not in self._cache:
            self._cache[prototype_type] = self._load(prototype_type)
        return self._cache[prototype_type]

    def get(self, prototype_id: str, prototype_type: PrototypeType) -> WeightedPrototype | None:
        return self.prototypes(prototype_type).get(prototype_id)

    def all(self) -> list[WeightedPrototype]:
        return [p for t in PrototypeType for p in self.prototypes(t).values()]

    def _load(self, prototype_type: PrototypeType) -> dict[str, WeightedPrototype]:
        lookup = self._registry.get_lookup_data(LOOKUP_KEYS[prototype_type])
        entries = (lookup or {}).get("entries") if isinstance(lookup, Mapping) else None
        if not isinstance(entries, Mapping):
            return {}

        loaded: dict[str, WeightedPrototype] = {}
        for prototype_id, entry in entries.items():
            if not isinstance(entry, Mapping):
                logger.warning("prototype_entry_invalid", prototype=prototype_id)
                continue
            try:
                loaded[prototype_id] = WeightedPrototype.from_entry(
                    prototype_id, entry, prototype_type
                )
            except ValueError as exc:
                logger.warning("prototype_entry_invalid", prototype=prototype_id, error=str(exc))
        return loaded
