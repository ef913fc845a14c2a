"""Unit tests for component registry system."""

import pytest

from seqforge.paradigms import ForeperiodAdapter, LocalGlobalAdapter, OddballAdapter
from seqforge.register_components import register_all
from seqforge.registry import GENERATOR_REGISTRY, PARADIGM_REGISTRY, ComponentRegistry


class TestComponentRegistry:
    """Test ComponentRegistry functionality."""

    def test_register_and_get_class(self):
        """Test registering and retrieving a class."""
        registry = ComponentRegistry("test")

        class TestComponent:
            pass

        registry.register("test_component", TestComponent)
        assert registry.is_registered("test_component")
        assert registry.get_class("test_component") == TestComponent

    def test_unregistered_component(self):
        """Test that unregistered components raise KeyError listing what exists."""
        registry = ComponentRegistry("test")
        registry.register("known", object)

        with pytest.raises(KeyError, match="Available: known"):
            registry.get_class("nonexistent")

    def test_list_registered_is_sorted(self):
        registry = ComponentRegistry("test")

        class Component1:
            pass

        class Component2:
            pass

        registry.register("zeta", Component1)
        registry.register("alpha", Component2)
        assert registry.list_registered() == ["alpha", "zeta"]

    def test_factory_function(self):
        """Test using factory function for creation."""
        registry = ComponentRegistry("test")

        class TestComponent:
            def __init__(self, value):
                self.value = value

        def factory(**kwargs):
            return TestComponent(kwargs.get("value", 0))

        registry.register("test", TestComponent, factory)

        instance = registry.create("test", value=42)
        assert instance.value == 42
        assert registry.get_class("test") == TestComponent

    def test_config_keyword_uses_from_config(self):
        registry = ComponentRegistry("test")

        class Configurable:
            def __init__(self, gain=1.0):
                self.gain = gain

            @classmethod
            def from_config(cls, config):
                return cls(gain=config["gain"] * 2)

        registry.register("cfg", Configurable)
        assert registry.create("cfg", config={"gain": 2.0}).gain == 4.0

    def test_reregistering_same_class_is_silent(self, recwarn):
        registry = ComponentRegistry("test")
        registry.register("a", int)
        registry.register("a", int)
        assert len(recwarn) == 0

    def test_overwriting_warns(self):
        registry = ComponentRegistry("test")
        registry.register("a", int)
        with pytest.warns(UserWarning, match="overwriting"):
            registry.register("a", float)
        assert registry.get_class("a") is float


class TestParadigmRegistry:
    """Test PARADIGM_REGISTRY."""

    def test_registered_paradigms(self):
        register_all()
        assert PARADIGM_REGISTRY.get_class("oddball") is OddballAdapter
        assert PARADIGM_REGISTRY.get_class("local_global") is LocalGlobalAdapter
        assert PARADIGM_REGISTRY.get_class("foreperiod") is ForeperiodAdapter

    def test_create_adapter(self, oddball_paradigm):
        register_all()
        adapter = PARADIGM_REGISTRY.create("oddball")
        plan = adapter.generate_trial_plan(oddball_paradigm, 10)
        assert plan.n_trials == 10


class TestGeneratorRegistry:
    """Test GENERATOR_REGISTRY."""

    def test_register_all_is_idempotent(self, recwarn):
        register_all()
        register_all()
        assert len(recwarn) == 0
        assert "noise.bandpass" in GENERATOR_REGISTRY.list_registered()
