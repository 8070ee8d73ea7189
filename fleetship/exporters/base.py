"""
Exporter contract and shared backend state.

Every backend (console, S3, Kafka, and the multi-exporter that fans
out to several of them) implements the Exporter protocol. Most of them
do so by extending BaseExporter, which owns the name, the enabled flag
and the debug flag.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from fleetship.config import SettingsProvider
from fleetship.context import ExportContext
from fleetship.types import LogType

logger = logging.getLogger(__name__)


@runtime_checkable
class Exporter(Protocol):
    """
    Protocol for export backends.

    Export calls raise on failure and return None on success. A
    disabled exporter must return immediately without touching its
    transport.
    """

    @property
    def name(self) -> str:
        """Stable identifier used in logs and error attribution."""
        ...

    def export(
        self,
        ctx: ExportContext,
        log_type: LogType | str,
        data: bytes,
        environment: str,
        uuid: str,
    ) -> None:
        """
        Send one raw payload.

        Args:
            ctx: Call context (cancellation and deadline).
            log_type: Type of the payload ("status", "result").
            data: Raw payload bytes.
            environment: Environment of the agent.
            uuid: Agent identifier.
        """
        ...

    def export_query(
        self,
        ctx: ExportContext,
        data: bytes,
        environment: str,
        uuid: str,
        name: str,
        status: int,
    ) -> None:
        """
        Send one on-demand query result.

        Args:
            ctx: Call context (cancellation and deadline).
            data: Raw payload bytes.
            environment: Environment of the agent.
            uuid: Agent identifier.
            name: Query name.
            status: Query status code.
        """
        ...

    def configure(self, settings: SettingsProvider) -> None:
        """Apply live settings. Called once before first use."""
        ...

    def is_enabled(self) -> bool:
        """Whether the exporter currently accepts calls."""
        ...

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable the exporter."""
        ...

    def close(self) -> None:
        """Release any held resources."""
        ...


class BaseExporter(ABC):
    """
    Abstract base class for export backends.

    Holds the state every backend shares. The enabled and debug flags
    are read on every call and may be toggled from another thread, so
    both are guarded by a lock.

    Attributes:
        name: Stable identifier of the backend.
    """

    def __init__(self, name: str) -> None:
        """
        Initialize shared state. Exporters start enabled.

        Args:
            name: Stable identifier of the backend.
        """
        self._name = name
        self._enabled = True
        self._debug = False
        self._state_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def is_enabled(self) -> bool:
        with self._state_lock:
            return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        with self._state_lock:
            self._enabled = bool(enabled)

    @property
    def debug(self) -> bool:
        with self._state_lock:
            return self._debug

    def set_debug(self, debug: bool) -> None:
        """Enable or disable verbose debug logging."""
        with self._state_lock:
            self._debug = bool(debug)

    @abstractmethod
    def export(
        self,
        ctx: ExportContext,
        log_type: LogType | str,
        data: bytes,
        environment: str,
        uuid: str,
    ) -> None:
        """Send one raw payload. Must be implemented by subclasses."""
        pass

    @abstractmethod
    def export_query(
        self,
        ctx: ExportContext,
        data: bytes,
        environment: str,
        uuid: str,
        name: str,
        status: int,
    ) -> None:
        """Send one query result. Must be implemented by subclasses."""
        pass

    def configure(self, settings: SettingsProvider) -> None:
        """
        Apply the enabled and debug flags from live settings.

        Args:
            settings: The settings provider.
        """
        logger.info(f"Configuring {self.name} exporter")
        enabled = settings.exporter_enabled(self.name)
        if enabled is not None:
            self.set_enabled(enabled)
        self.set_debug(settings.debug_enabled(self.name))

    def close(self) -> None:
        """No-op for exporters without persistent resources."""
        pass

    def __enter__(self) -> BaseExporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, enabled={self.is_enabled()})"
