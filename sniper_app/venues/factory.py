"""Connector construction keyed by the configured venue ``kind``."""

from typing import Callable, Optional

import structlog

from ..config.defaults import VenueSettings
from ..errors import ConfigurationError
from .base import PairRegistry, VenueConnector
from .guard import GuardedVenue
from .paper import PaperVenue

logger = structlog.get_logger(__name__)

ConnectorBuilder = Callable[[VenueSettings], VenueConnector]


class ConnectorFactory:
    """Registry of connector builders."""

    def __init__(self):
        self._builders: dict[str, ConnectorBuilder] = {}
        self._registry_kinds: set[str] = set()

    def register(self, kind: str, builder: ConnectorBuilder, provides_registry: bool = False) -> None:
        """
        Register a builder for a venue kind.

        Args:
            kind: Value of ``VenueSettings.kind`` the builder handles
            builder: Callable producing a connector from venue settings
            provides_registry: The built connector also implements ``PairRegistry``
        """
        self._builders[kind] = builder
        if provides_registry:
            self._registry_kinds.add(kind)
        else:
            self._registry_kinds.discard(kind)

    @property
    def kinds(self) -> list[str]:
        return sorted(self._builders)

    def create(self, settings: VenueSettings, timeout_seconds: float = 10.0,
               max_workers: int = 4) -> GuardedVenue:
        """Build and guard the connector for one venue."""
        builder = self._builders.get(settings.kind)
        if builder is None:
            raise ConfigurationError(
                f"Unknown venue kind: {settings.kind}",
                context={"venue": settings.name, "known_kinds": self.kinds}
            )

        connector = builder(settings)
        registry: Optional[PairRegistry] = None
        if settings.kind in self._registry_kinds and settings.scan_enabled:
            registry = connector  # type: ignore[assignment]

        logger.info("Venue connector created", venue=settings.name, kind=settings.kind,
                    scanning=registry is not None)
        return GuardedVenue(connector, registry=registry, timeout_seconds=timeout_seconds,
                            max_workers=max_workers)


def default_factory() -> ConnectorFactory:
    """Factory with the built-in connector kinds."""
    factory = ConnectorFactory()
    factory.register("paper", PaperVenue.from_settings, provides_registry=True)
    return factory
