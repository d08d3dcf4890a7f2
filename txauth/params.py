from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping, Protocol

from .config import CONFIG, AuthConfig


logger = logging.getLogger(__name__)


class ParameterSource(Protocol):
    def get(self, key: str) -> str | None: ...


class NetworkParameterStore:
    """Latest known network parameter values, keyed by parameter name."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._values: dict[str, str] = {}
        self._updated_epoch = 0
        if initial:
            self.update(initial)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[str(key)] = str(value)
            self._updated_epoch = int(time.time())

    def update(self, values: Mapping[str, Any]) -> None:
        with self._lock:
            for key, value in values.items():
                self._values[str(key)] = str(value)
            self._updated_epoch = int(time.time())

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._values)

    @property
    def updated_epoch(self) -> int:
        return self._updated_epoch


class NetworkParameterSync:
    def __init__(
        self,
        store: NetworkParameterStore,
        fetch: Callable[[], Mapping[str, Any]],
        *,
        config: AuthConfig = CONFIG,
    ) -> None:
        self.store = store
        self.fetch = fetch
        self.sync_interval = max(1.0, float(config.parameter_sync_interval))
        self.stop_event = threading.Event()
        self._sync_thread: threading.Thread | None = None
        self._last_sync_error = ""

    def sync_once(self) -> int:
        values = self.fetch()
        self.store.update(values)
        self._last_sync_error = ""
        logger.debug("synced %d network parameters", len(values))
        return len(values)

    def _sync_loop(self) -> None:
        while not self.stop_event.is_set():
            try:
                self.sync_once()
            except Exception as exc:
                self._last_sync_error = str(exc)
                logger.warning("could not sync network parameters: %s", exc)
            self.stop_event.wait(self.sync_interval)

    def start(self) -> None:
        if self._sync_thread is not None and self._sync_thread.is_alive():
            return
        self.stop_event.clear()
        self._sync_thread = threading.Thread(target=self._sync_loop, name="txauth-param-sync", daemon=True)
        self._sync_thread.start()

    def stop(self) -> None:
        self.stop_event.set()
        if self._sync_thread is not None and self._sync_thread.is_alive():
            self._sync_thread.join(timeout=2.0)
        self._sync_thread = None

    @property
    def last_sync_error(self) -> str:
        return self._last_sync_error
