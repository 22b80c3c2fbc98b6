"""
Infrastructure layer: once-only initialization of the analytics session.
"""
from typing import Awaitable, Callable, Optional
import asyncio
import logging

from app.config import Settings, settings
from app.domain.errors import ConfigurationError
from app.infrastructure.earth_engine_client import EarthEngineRasterService
from app.infrastructure.in_memory_raster_service import InMemoryRasterService
from app.infrastructure.raster_service import RasterService

logger = logging.getLogger(__name__)


class AnalyticsClientProvider:
    """
    Memoized-once async initializer for the RasterService.

    Concurrent callers arriving before initialization completes all await
    the same in-flight attempt. A successful client is kept for the process
    lifetime. A failed attempt is reported to every waiting caller and the
    next call starts a new attempt.
    """

    def __init__(self, factory: Callable[[], Awaitable[RasterService]]):
        """
        Args:
            factory: Coroutine function that builds a ready RasterService
        """
        self._factory = factory
        self._client: Optional[RasterService] = None
        self._pending: Optional[asyncio.Future] = None
        self.attempts = 0

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    async def get(self) -> RasterService:
        """
        Return the client, initializing it on first use.

        Raises:
            ConfigurationError: If initialization fails for configuration reasons
        """
        if self._client is not None:
            return self._client
        if self._pending is None:
            self._pending = asyncio.ensure_future(self._initialize())
        # A cancelled caller must not cancel the attempt other callers wait on
        return await asyncio.shield(self._pending)

    async def _initialize(self) -> RasterService:
        self.attempts += 1
        logger.info(f"Initializing analytics client (attempt {self.attempts})")
        try:
            client = await self._factory()
        except Exception as e:
            logger.error(f"Analytics client initialization failed: {e}")
            raise
        finally:
            self._pending = None

        self._client = client
        return client


class DeferredRasterService:
    """
    RasterService whose calls wait for the provider's client.

    Nothing is initialized until the first method call.
    """

    def __init__(self, provider: AnalyticsClientProvider):
        self._provider = provider

    def __getattr__(self, name: str) -> Callable[..., Awaitable]:
        if name.startswith("_"):
            raise AttributeError(name)

        async def call(*args, **kwargs):
            client = await self._provider.get()
            return await getattr(client, name)(*args, **kwargs)

        call.__name__ = name
        return call


async def create_raster_service(config: Settings = settings) -> RasterService:
    """
    Build the RasterService selected by `analytics_backend`.

    Raises:
        ConfigurationError: For an unknown backend or missing credentials
    """
    backend = config.analytics_backend.lower()

    if backend == "earthengine":
        return await EarthEngineRasterService.connect(config)

    if backend == "memory":
        logger.warning("Using in-memory raster backend with an empty scene catalog")
        return InMemoryRasterService(
            scale=config.analysis_scale,
            max_pixels=config.max_pixels,
            best_effort=config.best_effort,
        )

    raise ConfigurationError(
        f"Unknown analytics backend '{config.analytics_backend}' (expected 'earthengine' or 'memory')"
    )


# Singleton instance
_provider: Optional[AnalyticsClientProvider] = None


def get_analytics_provider() -> AnalyticsClientProvider:
    """
    Get or create the singleton analytics client provider.

    Returns:
        AnalyticsClientProvider instance
    """
    global _provider
    if _provider is None:
        _provider = AnalyticsClientProvider(create_raster_service)
    return _provider
