"""Strategy registry for discovering and instantiating strategies.

Usage:
    @register_strategy("my_strategy")
    class MyStrategy(Strategy):
        ...

    strategy = create_strategy("my_strategy", interval="1h")
    strategies = list_strategies()
"""

import importlib.util
import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

from wisp_engine.config.models import WispConfig

from .interface import Strategy

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=type[Strategy])

# Global registry: strategy_name -> strategy_class
_REGISTRY: dict[str, type[Strategy]] = {}


def register_strategy(name: str) -> Callable[[S], S]:
    """Decorator to register a strategy class under a given name.

    Re-registering from the same module (e.g. reloading a strategy file)
    replaces the previous class.

    Raises:
        ValueError: If another module already registered the name.
    """

    def decorator(cls: S) -> S:
        existing = _REGISTRY.get(name)
        if existing is not None and existing.__module__ != cls.__module__:
            raise ValueError(
                f"Strategy '{name}' is already registered by {existing.__name__}"
            )
        cls.name = name
        _REGISTRY[name] = cls
        logger.debug("Registered strategy: %s -> %s", name, cls.__name__)
        return cls

    return decorator


def get_strategy_class(name: str) -> type[Strategy]:
    """Get the strategy class by name (without instantiating).

    Raises:
        KeyError: If no strategy is registered under the given name.
    """
    cls = _REGISTRY.get(name)
    if cls is None:
        available = ", ".join(sorted(_REGISTRY.keys())) or "(none)"
        raise KeyError(f"Unknown strategy '{name}'. Available: {available}")
    return cls


def create_strategy(name: str, **kwargs: Any) -> Strategy:
    """Create a strategy instance by name.

    Raises:
        KeyError: If no strategy is registered under the given name.
    """
    return get_strategy_class(name)(**kwargs)


def list_strategies() -> list[str]:
    """Return a sorted list of registered strategy names."""
    return sorted(_REGISTRY.keys())


def load_strategy_file(path: Path) -> None:
    """Import a user strategy module so its ``@register_strategy`` runs.

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    if not path.exists():
        raise FileNotFoundError(f"Strategy file not found: {path}")
    module_name = f"wisp_user_strategies.{path.parent.name}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot load strategy module from {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    logger.info("Loaded strategy module %s", path)


def strategy_from_config(config: WispConfig) -> Strategy:
    """Instantiate the configured strategy.

    ``position_size`` defaults to the risk limit so sizing follows
    ``risk.max_position_size`` unless the strategy params say otherwise.
    """
    params = {"position_size": config.risk.max_position_size, **config.strategy.params}
    return create_strategy(
        config.strategy.name,
        interval=config.strategy.interval,
        assets=list(config.strategy.assets),
        exchanges=list(config.strategy.exchanges),
        warmup=config.strategy.warmup,
        params=params,
    )
