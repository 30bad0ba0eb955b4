"""Base service class shared by the scanning services.

Provides service-scoped logging, a re-entrant state lock, lifecycle
management (initialize / start / stop / shutdown), operation counters and
health reporting.
"""
from __future__ import annotations

import abc
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .exceptions import ServiceError
from ..config.settings import Config


@dataclass
class ServiceHealth:
    """Health check result for a service."""
    is_healthy: bool
    status_message: str
    last_check: float = field(default_factory=time.time)
    details: Dict[str, Any] = field(default_factory=dict)


class BaseService(abc.ABC):
    """Abstract base class for all services."""

    def __init__(self, config: Optional[Config] = None, service_name: Optional[str] = None):
        """Initialize base service.

        Args:
            config: Optional configuration object (defaults are used when omitted)
            service_name: Optional service name for logging (defaults to class name)
        """
        self._service_name = service_name or self.__class__.__name__
        self._config = config if config is not None else Config()
        self._logger = logging.getLogger(f"{__name__}.{self._service_name}")

        self._is_initialized = False
        self._is_running = False
        self._state_lock = threading.RLock()
        self._last_error: Optional[Exception] = None

        self._health_status = ServiceHealth(is_healthy=False, status_message="Not initialized")

        self._operation_counters: Dict[str, int] = {}
        self._error_counters: Dict[str, int] = {}
        self._start_time: Optional[float] = None
        self._total_operations = 0
        self._successful_operations = 0

        self._logger.debug(f"Initializing {self._service_name}")

    @property
    def service_name(self) -> str:
        return self._service_name

    @property
    def config(self) -> Config:
        return self._config

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def is_initialized(self) -> bool:
        with self._state_lock:
            return self._is_initialized

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._is_running

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    def initialize(self) -> None:
        """Initialize the service.

        Subclasses override _initialize() for their own resources.

        Raises:
            ServiceError: If initialization fails
        """
        with self._state_lock:
            if self._is_initialized:
                self._logger.debug("Service already initialized")
                return

            self._logger.info(f"Initializing service {self._service_name}")
            try:
                self._validate_configuration()
                self._initialize()
                self._is_initialized = True
                self._start_time = time.time()
                self._update_health_status(True, "Initialized successfully")
            except Exception as e:
                self._last_error = e
                self._update_health_status(False, f"Initialization failed: {e}")
                self._logger.error(f"Failed to initialize service {self._service_name}: {e}")
                raise ServiceError(f"Failed to initialize {self._service_name}: {e}") from e

    def start(self) -> None:
        """Start the service.

        Raises:
            ServiceError: If service is not initialized or start fails
        """
        with self._state_lock:
            if not self._is_initialized:
                raise ServiceError(f"Service {self._service_name} not initialized")
            if self._is_running:
                self._logger.debug("Service already running")
                return

            try:
                self._start()
                self._is_running = True
                self._update_health_status(True, "Service running")
                self._logger.info(f"Service {self._service_name} started")
            except Exception as e:
                self._last_error = e
                self._update_health_status(False, f"Start failed: {e}")
                raise ServiceError(f"Failed to start {self._service_name}: {e}") from e

    def stop(self) -> None:
        with self._state_lock:
            if not self._is_running:
                return
            self._stop()
            self._is_running = False
            self._update_health_status(True, "Service stopped")
            self._logger.info(f"Service {self._service_name} stopped")

    def shutdown(self) -> None:
        """Shutdown the service; errors are logged so cleanup can continue."""
        with self._state_lock:
            if not self._is_initialized:
                self._logger.debug("Service not initialized, nothing to shutdown")
                return

            try:
                if self._is_running:
                    self._stop()
                self._shutdown()
            except Exception as e:
                self._last_error = e
                self._logger.error(f"Error during service shutdown: {e}")
            finally:
                self._is_initialized = False
                self._is_running = False
                self._update_health_status(False, "Service shutdown")
                self._logger.info(f"Service {self._service_name} shutdown completed")

    def get_health_status(self) -> ServiceHealth:
        try:
            is_healthy = self._health_check()
            self._health_status = ServiceHealth(
                is_healthy=is_healthy,
                status_message="Service healthy" if is_healthy else "Service unhealthy",
                details=self._get_health_details(),
            )
        except Exception as e:
            self._health_status = ServiceHealth(
                is_healthy=False,
                status_message=f"Health check failed: {e}",
                details={'error': str(e)},
            )
        return self._health_status

    def get_metrics(self) -> Dict[str, Any]:
        with self._state_lock:
            uptime = time.time() - self._start_time if self._start_time else 0.0
            success_rate = (self._successful_operations / self._total_operations
                            if self._total_operations > 0 else 0.0)
            return {
                'service_name': self._service_name,
                'is_initialized': self._is_initialized,
                'is_running': self._is_running,
                'uptime_seconds': uptime,
                'total_operations': self._total_operations,
                'successful_operations': self._successful_operations,
                'success_rate': success_rate,
                'operation_counters': self._operation_counters.copy(),
                'error_counters': self._error_counters.copy(),
                'last_error': str(self._last_error) if self._last_error else None,
            }

    @contextmanager
    def operation_context(self, operation_name: str):
        """Count an operation and record the error type if it raises.

        Usage:
            with self.operation_context("convert_frame"):
                ...
        """
        with self._state_lock:
            self._total_operations += 1
            self._operation_counters[operation_name] = self._operation_counters.get(operation_name, 0) + 1
        try:
            yield
        except Exception as e:
            with self._state_lock:
                error_type = type(e).__name__
                self._error_counters[error_type] = self._error_counters.get(error_type, 0) + 1
                self._last_error = e
            raise
        else:
            with self._state_lock:
                self._successful_operations += 1

    @abc.abstractmethod
    def _initialize(self) -> None:
        """Initialize service-specific resources."""

    @abc.abstractmethod
    def _shutdown(self) -> None:
        """Cleanup service-specific resources."""

    def _start(self) -> None:
        pass

    def _stop(self) -> None:
        pass

    def _validate_configuration(self) -> None:
        """Validate service configuration.

        Raises:
            ConfigError: If configuration is invalid
        """

    def _health_check(self) -> bool:
        return self._is_initialized and not self._last_error

    def _get_health_details(self) -> Dict[str, Any]:
        return {
            'initialized': self._is_initialized,
            'running': self._is_running,
            'total_operations': self._total_operations,
            'error_count': sum(self._error_counters.values()),
        }

    def _update_health_status(self, is_healthy: bool, message: str) -> None:
        self._health_status = ServiceHealth(
            is_healthy=is_healthy,
            status_message=message,
            last_check=time.time()
        )
