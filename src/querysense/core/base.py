"""Base classes for QuerySense components.

Components that own a lifecycle (background tasks, persistence) derive
from ``AsyncComponent``; components that are plain computations derive from
``BaseComponent`` to share configuration handling and health reporting.

Classes:
    BaseComponent: Generic base class for configured components
    AsyncComponent: Base class for components with async initialize/cleanup

Example:
    >>> class QueryRouter(AsyncComponent[RouterConfig]):
    ...     async def _async_initialize(self) -> None:
    ...         self.start_health_checks()
"""

import asyncio
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, ClassVar, Dict, Generic, TypeVar

from ..logging.factory import get_logger
from .exceptions import (
    ConfigurationError,
    ErrorCodes,
    QuerySenseException,
    ValidationError,
)

T = TypeVar("T")  # Configuration type


class BaseComponent(Generic[T], ABC):
    """Base class for all QuerySense components.

    Type Parameters:
        T: Type of configuration object this component accepts

    Attributes:
        component_name: Name of the component for logging and identification
        version: Component version for compatibility checking
    """

    component_name: ClassVar[str] = "BaseComponent"
    version: ClassVar[str] = "1.0.0"

    def __init__(self, config: T) -> None:
        """Initialize base component.

        Args:
            config: Configuration object for this component

        Raises:
            ValidationError: If configuration is missing
            ConfigurationError: If configuration is invalid
        """
        if config is None:
            raise ValidationError(
                "Configuration cannot be None",
                code="CONFIG_NULL",
                context={"component": self.component_name},
            )

        self._config: T = config
        self._initialized: bool = False
        self._creation_time: float = time.time()
        self.logger = get_logger(f"querysense.{self.component_name}")

        if not self.validate_config():
            raise ConfigurationError(
                f"Invalid configuration for {self.component_name}",
                code=ErrorCodes.CONFIG_INVALID,
                context={"component": self.component_name},
            )

    @property
    def config(self) -> T:
        return self._config

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def uptime(self) -> float:
        """Seconds since the component was created."""
        return time.time() - self._creation_time

    def validate_config(self) -> bool:
        """Validate component configuration.

        Subclasses override this to add component-specific checks.
        """
        return self._config is not None

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "component": self.component_name,
            "version": self.version,
            "initialized": self._initialized,
            "uptime_seconds": self.uptime,
            "status": "healthy" if self._initialized else "not_initialized",
        }

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "component": self.component_name,
            "uptime_seconds": self.uptime,
            "initialized": self._initialized,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self.component_name!r}, "
            f"initialized={self._initialized}, "
            f"uptime={self.uptime:.2f}s)"
        )


class AsyncComponent(BaseComponent[T]):
    """Base class for components with async initialization and cleanup.

    ``initialize`` and ``cleanup`` are idempotent and serialized by locks,
    so concurrent callers cannot run ``_async_initialize`` twice.
    """

    def __init__(self, config: T) -> None:
        super().__init__(config)
        self._initialization_lock = asyncio.Lock()
        self._cleanup_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize component asynchronously.

        Raises:
            QuerySenseException: If initialization fails
        """
        async with self._initialization_lock:
            if self._initialized:
                return

            self.logger.info("Initializing component", component=self.component_name)

            try:
                await self._async_initialize()
            except Exception as e:
                self.logger.error(
                    "Component initialization failed",
                    component=self.component_name,
                    error=str(e),
                )
                raise QuerySenseException(
                    f"Failed to initialize {self.component_name}",
                    code=ErrorCodes.INIT_FAILED,
                    context={"component": self.component_name},
                    cause=e,
                ) from e

            self._initialized = True
            self.logger.info(
                "Component initialized successfully",
                component=self.component_name,
            )

    async def cleanup(self) -> None:
        """Clean up component resources asynchronously.

        Cleanup failures are logged and re-raised after the component is
        marked as no longer initialized.
        """
        async with self._cleanup_lock:
            if not self._initialized:
                return

            self.logger.info("Cleaning up component", component=self.component_name)
            try:
                await self._async_cleanup()
            except Exception as e:
                self.logger.error(
                    "Component cleanup failed",
                    component=self.component_name,
                    error=str(e),
                )
                raise
            finally:
                self._initialized = False

            self.logger.info(
                "Component cleaned up successfully",
                component=self.component_name,
            )

    @abstractmethod
    async def _async_initialize(self) -> None:
        """Perform async initialization work."""

    async def _async_cleanup(self) -> None:
        """Perform async cleanup work."""

    @asynccontextmanager
    async def managed_lifecycle(self) -> AsyncGenerator["AsyncComponent[T]", None]:
        """Context manager that initializes the component and always cleans up.

        Example:
            >>> async with engine.managed_lifecycle() as running:
            ...     await running.optimize_query(request)
        """
        try:
            await self.initialize()
            yield self
        finally:
            await self.cleanup()

    async def __aenter__(self) -> "AsyncComponent[T]":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.cleanup()
