"""
DUT Registry

Manages registration and discovery of target engines.
Supports both built-in and user-defined DUTs.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type

from pysmith.core.duts.base import Dut, DutConfig

logger = logging.getLogger(__name__)


class DutRegistry:
    """Registry for target engines.

    Example:
        # Register a custom DUT
        DutRegistry.register(MyEngineDut)

        # Get a DUT by name
        dut = DutRegistry.get("postgresql", dsn="...")

        # List available DUTs
        for name, desc in DutRegistry.list_duts().items():
            print(f"{name}: {desc}")
    """

    _duts: Dict[str, Type[Dut]] = {}

    @classmethod
    def register(cls, dut_class: Type[Dut], name: Optional[str] = None) -> None:
        """Register a DUT class under ``name`` (defaults to ``dut_class.name``)."""
        dut_name = name or dut_class.name
        cls._duts[dut_name] = dut_class
        logger.debug("Registered DUT: %s", dut_name)

    @classmethod
    def unregister(cls, name: str) -> bool:
        """Unregister a DUT by name.

        Returns:
            True if the DUT was removed, False if not found
        """
        if name in cls._duts:
            del cls._duts[name]
            return True
        return False

    @classmethod
    def get(cls, name: str, config: Optional[DutConfig] = None, **kwargs) -> Dut:
        """Get a DUT instance by name.

        Raises:
            ValueError: If the DUT is not registered
        """
        if name not in cls._duts:
            available = ", ".join(sorted(cls._duts.keys()))
            raise ValueError(f"DUT '{name}' not found. Available: {available}")

        return cls._duts[name](config=config, **kwargs)

    @classmethod
    def list_duts(cls) -> Dict[str, str]:
        """List all registered DUTs with descriptions."""
        return {
            name: dut_class.description
            for name, dut_class in sorted(cls._duts.items())
        }

    @classmethod
    def get_dut_class(cls, name: str) -> Optional[Type[Dut]]:
        return cls._duts.get(name)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._duts

    @classmethod
    def available_duts(cls) -> List[str]:
        return list(cls._duts.keys())


def register_dut(name: Optional[str] = None):
    """Decorator to register a DUT class.

    Example:
        @register_dut("my_database")
        class MyDatabaseDut(Dut):
            ...
    """
    def decorator(dut_class: Type[Dut]) -> Type[Dut]:
        DutRegistry.register(dut_class, name)
        return dut_class
    return decorator
