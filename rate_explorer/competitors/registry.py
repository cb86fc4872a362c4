"""
Source registry for competitor listing sources.

This module provides a registry pattern for discovering and instantiating
competitor sources by id.
"""

import logging
from typing import Dict, Type, Optional, List

from ..core.config import get_pricing_config
from .base import BaseSource

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Registry for managing competitor source classes.

    Usage:
        registry = SourceRegistry()
        registry.register('vipgateway', VipGatewaySource)

        source = registry.get_source('vipgateway')
    """

    _instance: Optional['SourceRegistry'] = None
    _sources: Dict[str, Type[BaseSource]] = {}

    def __new__(cls):
        """Singleton pattern - only one registry instance."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def register(cls, source_id: str, source_class: Type[BaseSource]) -> None:
        """
        Register a source class.

        Args:
            source_id: Source identifier (e.g., 'vipgateway')
            source_class: Source class (not instance)
        """
        if not issubclass(source_class, BaseSource):
            raise TypeError(f"{source_class} must be a subclass of BaseSource")

        cls._sources[source_id.lower()] = source_class
        logger.debug(f"Registered source {source_id}: {source_class.__name__}")

    @classmethod
    def get_source_class(cls, source_id: str) -> Optional[Type[BaseSource]]:
        return cls._sources.get(source_id.lower())

    @classmethod
    def get_source(cls, source_id: str, **kwargs) -> Optional[BaseSource]:
        """
        Get a source instance, configured from the pricing config when the
        source id is known there.

        Args:
            source_id: Source identifier
            **kwargs: Additional arguments passed to the source constructor

        Returns:
            Source instance or None if not registered
        """
        source_class = cls.get_source_class(source_id)
        if source_class is None:
            logger.warning(f"Unknown source: {source_id}")
            return None

        if 'config' not in kwargs:
            kwargs['config'] = get_pricing_config().sources.get(source_id.lower())
        return source_class(**kwargs)

    @classmethod
    def list_source_ids(cls) -> List[str]:
        return sorted(cls._sources.keys())

    @classmethod
    def is_registered(cls, source_id: str) -> bool:
        return cls.get_source_class(source_id) is not None

    @classmethod
    def clear(cls) -> None:
        """Clear all registered sources (mainly for testing)."""
        cls._sources.clear()


def register_source(source_id: str):
    """
    Decorator to register a source class.

    Usage:
        @register_source('vipgateway')
        class VipGatewaySource(BaseSource):
            ...
    """
    def decorator(cls: Type[BaseSource]) -> Type[BaseSource]:
        SourceRegistry.register(source_id, cls)
        return cls
    return decorator


# Convenience functions
def get_source(source_id: str, **kwargs) -> Optional[BaseSource]:
    """Get source instance by id."""
    return SourceRegistry.get_source(source_id, **kwargs)


def list_sources() -> List[str]:
    """List registered source ids."""
    return SourceRegistry.list_source_ids()


def enabled_sources() -> List[str]:
    """Registered source ids that are not disabled in configuration."""
    configured = get_pricing_config().sources
    return [
        source_id for source_id in list_sources()
        if source_id not in configured or configured[source_id].enabled
    ]
