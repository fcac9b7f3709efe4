"""
Tests for the prototype data registry.

Covers:
  - InMemoryDataRegistry lookups
  - YAML loading
  - PrototypeCatalog parsing, caching and invalid entries
  - Collaborator validation
"""

from __future__ import annotations

import pytest

from affectdiag.clients.registry import (
    LOOKUP_KEYS,
    InMemoryDataRegistry,
    PrototypeCatalog,
    load_registry_from_yaml,
    require_registry,
)
from affectdiag.primitives.common import PrototypeType


def _make_registry() -> InMemoryDataRegistry:
    return InMemoryDataRegistry.from_prototypes(
        emotions={
            "joy": {"weights": {"valence": 1.0, "arousal": 0.5}, "gates": ["valence >= 0.35"]},
            "fear": {"weights": {"threat": 1.0, "arousal": 0.8}, "gates": ["threat >= 0.30"]},
        },
        sexual={
            "sexual_lust": {"weights": {"sexual_arousal": 1.0}, "gates": ["SA >= 0.2"]},
        },
    )


class TestInMemoryDataRegistry:
    def test_lookup_shape(self):
        registry = _make_registry()
        data = registry.get_lookup_data(LOOKUP_KEYS[PrototypeType.EMOTION])
        assert set(data["entries"]) == {"joy", "fear"}

    def test_missing_key_returns_none(self):
        assert InMemoryDataRegistry().get_lookup_data("core:emotion_prototypes") is None

    def test_register(self):
        registry = InMemoryDataRegistry()
        registry.register("core:emotion_prototypes", {"entries": {"calm": {"weights": {}}}})
        assert "calm" in registry.get_lookup_data("core:emotion_prototypes")["entries"]


class TestLoadFromYaml:
    def test_loads_both_types(self, tmp_path):
        path = tmp_path / "prototypes.yaml"
        path.write_text(
            "emotions:\n"
            "  joy:\n"
            "    weights: {valence: 1.0}\n"
            "    gates: ['valence >= 0.35']\n"
            "sexual:\n"
            "  sexual_lust:\n"
            "    weights: {sexual_arousal: 1.0}\n"
        )
        catalog = PrototypeCatalog(load_registry_from_yaml(path))
        assert catalog.get("joy", PrototypeType.EMOTION) is not None
        assert catalog.get("sexual_lust", PrototypeType.SEXUAL) is not None

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_registry_from_yaml(tmp_path / "absent.yaml")


class TestPrototypeCatalog:
    def test_parses_entries(self):
        catalog = PrototypeCatalog(_make_registry())
        joy = catalog.get("joy", PrototypeType.EMOTION)
        assert joy.weights == {"valence": 1.0, "arousal": 0.5}
        assert joy.type == PrototypeType.EMOTION

    def test_all_spans_types(self):
        ids = {p.id for p in PrototypeCatalog(_make_registry()).all()}
        assert ids == {"joy", "fear", "sexual_lust"}

    def test_missing_lookup_means_no_prototypes(self):
        registry = InMemoryDataRegistry.from_prototypes(emotions={"joy": {"weights": {}}})
        assert PrototypeCatalog(registry).prototypes(PrototypeType.SEXUAL) == {}

    def test_invalid_entries_skipped(self):
        registry = InMemoryDataRegistry.from_prototypes(
            emotions={
                "ok": {"weights": {"valence": 1.0}},
                "broken": "not a mapping",
                "bad_weights": {"weights": {"valence": "lots"}},
            }
        )
        assert set(PrototypeCatalog(registry).prototypes(PrototypeType.EMOTION)) == {"ok"}

    def test_entries_not_a_mapping(self):
        registry = InMemoryDataRegistry({"core:emotion_prototypes": {"entries": ["joy"]}})
        assert PrototypeCatalog(registry).prototypes(PrototypeType.EMOTION) == {}


class TestRequireRegistry:
    def test_none_rejected(self):
        with pytest.raises(TypeError):
            require_registry(None, "Owner")

    def test_object_without_lookup_rejected(self):
        with pytest.raises(TypeError, match="get_lookup_data"):
            require_registry(object(), "Owner")

    def test_duck_typed_registry_accepted(self):
        class _Registry:
            def get_lookup_data(self, key):
                return None

        require_registry(_Registry(), "Owner")
