"""Component registry system for SeqForge extensibility.

Stimulus generators and paradigm adapters register themselves under a
string name and are instantiated by name from configuration documents, so
no part of the compiler carries an if/else chain over component types.

Example:
    >>> from seqforge.registry import GENERATOR_REGISTRY
    >>> GENERATOR_REGISTRY.register("chirp", ChirpGenerator)
    >>> generator = GENERATOR_REGISTRY.create("chirp")
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, Type
import warnings


class ComponentRegistry:
    """Generic registry for component classes.

    Attributes:
        _registry: Dict mapping component name → (class, factory_func).
            factory_func is optional; if None the class is instantiated
            directly.
    """

    def __init__(self, registry_name: str = "ComponentRegistry"):
        """Initialize empty registry.

        Args:
            registry_name: Name for error messages (e.g. "GENERATOR_REGISTRY").
        """
        self._registry: Dict[str, Tuple[Type, Optional[Callable]]] = {}
        self._name = registry_name

    def register(
        self,
        name: str,
        cls: Type,
        factory_func: Optional[Callable] = None,
    ) -> None:
        """Register a component class.

        Args:
            name: String identifier for this component (e.g. "tone").
            cls: Component class.
            factory_func: Optional factory called instead of ``cls(**kwargs)``.

        Note:
            Re-registering the same class under the same name is a no-op.
            Overwriting with a different class warns.
        """
        if name in self._registry:
            existing_cls, _ = self._registry[name]
            if existing_cls is cls:
                return
            warnings.warn(
                f"{self._name}: Component '{name}' already registered with "
                f"{existing_cls.__name__}, overwriting with {cls.__name__}",
                UserWarning,
            )
        self._registry[name] = (cls, factory_func)

    def create(self, name: str, **kwargs) -> Any:
        """Create a component instance by name.

        Args:
            name: Registered component name.
            **kwargs: Arguments passed to the constructor or factory_func.
                A single ``config`` keyword is routed to ``from_config()``.

        Returns:
            Component instance.

        Raises:
            KeyError: If name is not registered.
        """
        cls = self.get_class(name)
        _, factory_func = self._registry[name]
        if factory_func is not None:
            return factory_func(**kwargs)
        if set(kwargs) == {"config"} and hasattr(cls, "from_config"):
            return cls.from_config(kwargs["config"])
        return cls(**kwargs)

    def list_registered(self) -> List[str]:
        """List all registered component names, sorted."""
        return sorted(self._registry.keys())

    def is_registered(self, name: str) -> bool:
        return name in self._registry

    def get_class(self, name: str) -> Type:
        """Get the registered class for a component name.

        Raises:
            KeyError: If name is not registered.
        """
        if name not in self._registry:
            available = ", ".join(sorted(self._registry.keys()))
            raise KeyError(
                f"{self._name}: Component '{name}' not registered. "
                f"Available: {available}"
            )
        cls, _ = self._registry[name]
        return cls


GENERATOR_REGISTRY = ComponentRegistry("GENERATOR_REGISTRY")
PARADIGM_REGISTRY = ComponentRegistry("PARADIGM_REGISTRY")
