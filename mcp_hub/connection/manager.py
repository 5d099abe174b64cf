"""Connection lifecycle management for upstream servers.

Each registered server moves through a small state machine:

    disconnected -> connecting -> connected
    connecting -> retrying -> connecting      (failed attempt, retries left)
    connecting -> failed                      (retries exhausted)
    connected -> disconnected                 (disconnect or heartbeat failure)
    connecting/retrying -> disconnected       (disconnect cancels the attempt)
    failed -> disconnected                    (reset only)

Every transition into connected, retrying, failed or disconnected emits one
ConnectionEvent to the subscribers, with per-server timestamps that never go
backwards.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from ..errors import ServerFailedError, ServerNotFoundError
from ..logging_config import get_logger
from ..models import (
    ConnectionConfig,
    ConnectionEvent,
    ConnectionState,
    ConnectionStatus,
    ServerConfig,
)
from .health import HttpHealthCheck

Connector = Callable[[str, ServerConfig], Awaitable[Any]]
EventListener = Callable[[ConnectionEvent], None]


@dataclass
class _ServerEntry:
    config: ServerConfig
    status: ConnectionStatus
    attempt_task: asyncio.Task | None = None
    heartbeat_task: asyncio.Task | None = None
    last_event_at: datetime | None = None


class ConnectionManager:
    """Tracks connectivity, retries and heartbeats per upstream server.

    The connector is any coroutine function ``(server_id, config)`` that
    returns once the server is reachable and raises otherwise. Timeouts are
    enforced here, so a connector that hangs counts as a failed attempt.

    Example:
        manager = ConnectionManager()
        manager.register_server("weather", ServerConfig(base_url="https://api.example.com"))
        manager.subscribe(lambda event: print(event.type, event.server_id))

        status = await manager.connect("weather")
    """

    def __init__(
        self,
        connector: Connector | None = None,
        heartbeat_probe: Connector | None = None,
        logger: logging.Logger | None = None,
    ):
        self._connector = connector or HttpHealthCheck()
        self._heartbeat_probe = heartbeat_probe or self._connector
        self._servers: dict[str, _ServerEntry] = {}
        self._listeners: list[EventListener] = []
        # Guards _servers and every status; never held across an await
        self._lock = threading.Lock()
        self.logger = logger or get_logger("connection")

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_server(self, server_id: str, config: ServerConfig | ConnectionConfig) -> None:
        """Register a server, or replace the config of a known one."""
        if isinstance(config, ConnectionConfig):
            config = ServerConfig(connection=config)

        with self._lock:
            entry = self._servers.get(server_id)
            if entry is None:
                self._servers[server_id] = _ServerEntry(config=config, status=ConnectionStatus())
            else:
                entry.config = config
        self.logger.debug("Registered server %s", server_id)

    async def unregister_server(self, server_id: str) -> None:
        await self.disconnect(server_id)
        with self._lock:
            self._servers.pop(server_id, None)

    @property
    def server_ids(self) -> list[str]:
        with self._lock:
            return list(self._servers)

    def get_config(self, server_id: str) -> ServerConfig:
        with self._lock:
            return self._require(server_id).config

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register an event listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: ConnectionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.logger.exception(
                    "Connection event listener failed for %s event on %s",
                    event.type,
                    event.server_id,
                )

    def _event(
        self,
        server_id: str,
        entry: _ServerEntry,
        event_type: str,
        data: Any = None,
        error: str | None = None,
    ) -> ConnectionEvent:
        # Caller holds the lock
        timestamp = datetime.now()
        if entry.last_event_at is not None and timestamp < entry.last_event_at:
            timestamp = entry.last_event_at
        entry.last_event_at = timestamp
        return ConnectionEvent(
            type=event_type, server_id=server_id, timestamp=timestamp, data=data, error=error
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self, server_id: str) -> ConnectionStatus:
        """Return a copy of a server's status."""
        with self._lock:
            entry = self._servers.get(server_id)
            if entry is None:
                return ConnectionStatus(connected=False, error="Connection does not exist")
            return entry.status.model_copy()

    def get_active_connections(self) -> list[str]:
        with self._lock:
            return [
                server_id
                for server_id, entry in self._servers.items()
                if entry.status.state is ConnectionState.CONNECTED
            ]

    def is_connected(self, server_id: str) -> bool:
        return self.get_status(server_id).connected

    def _require(self, server_id: str) -> _ServerEntry:
        entry = self._servers.get(server_id)
        if entry is None:
            raise ServerNotFoundError(server_id)
        return entry

    # ------------------------------------------------------------------
    # Connect / disconnect
    # ------------------------------------------------------------------

    async def connect(self, server_id: str) -> ConnectionStatus:
        """Connect a server, retrying transient failures.

        Concurrent calls for the same server share one in-flight attempt.

        Returns:
            The server's status once connected, or once a concurrent
            disconnect() cancelled the attempt.

        Raises:
            ServerNotFoundError: if the server was never registered.
            ServerFailedError: if retries are exhausted, or the server is
                already in the failed state and has not been reset.
        """
        with self._lock:
            entry = self._require(server_id)
            status = entry.status

            if status.state is ConnectionState.FAILED:
                raise ServerFailedError(server_id, status.error, status.attempts or 0)
            if status.state is ConnectionState.CONNECTED:
                return status.model_copy()

            task = entry.attempt_task
            if task is None or task.done():
                status.state = ConnectionState.CONNECTING
                task = asyncio.get_running_loop().create_task(
                    self._run_attempts(server_id, entry), name=f"connect:{server_id}"
                )
                task.add_done_callback(_consume_result)
                entry.attempt_task = task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return self.get_status(server_id)
            raise

    async def _run_attempts(self, server_id: str, entry: _ServerEntry) -> ConnectionStatus:
        config = entry.config.connection
        max_attempts = config.max_retries + 1

        while True:
            with self._lock:
                if entry.attempt_task is not asyncio.current_task():
                    return entry.status.model_copy()
                entry.status.state = ConnectionState.CONNECTING

            started = time.perf_counter()
            try:
                await asyncio.wait_for(
                    self._connector(server_id, entry.config), timeout=config.timeout
                )
            except asyncio.TimeoutError:
                error = f"Connection timed out after {config.timeout}s"
            except Exception as e:
                error = str(e) or type(e).__name__
            else:
                latency = (time.perf_counter() - started) * 1000
                with self._lock:
                    # wait_for can swallow a cancel that lands after the
                    # connector finished; disconnect() has already detached us
                    if entry.attempt_task is not asyncio.current_task():
                        return entry.status.model_copy()
                    status = entry.status
                    status.connected = True
                    status.state = ConnectionState.CONNECTED
                    status.attempts = 0
                    status.error = None
                    status.latency = latency
                    status.last_connected = datetime.now()
                    event = self._event(server_id, entry, "connected", data={"latency": latency})
                    snapshot = status.model_copy()
                    entry.attempt_task = None
                self._emit(event)
                self.logger.info("Connected to %s in %.1fms", server_id, latency)
                self._start_heartbeat(server_id, entry)
                return snapshot

            with self._lock:
                if entry.attempt_task is not asyncio.current_task():
                    return entry.status.model_copy()
                status = entry.status
                status.connected = False
                status.error = error
                status.attempts = (status.attempts or 0) + 1
                attempts = status.attempts
                failed = attempts >= max_attempts
                if failed:
                    status.state = ConnectionState.FAILED
                    entry.attempt_task = None
                    event = self._event(
                        server_id,
                        entry,
                        "error",
                        data={"state": ConnectionState.FAILED.value, "attempts": attempts},
                        error=error,
                    )
                else:
                    status.state = ConnectionState.RETRYING
                    event = self._event(
                        server_id,
                        entry,
                        "retry",
                        data={
                            "attempt": attempts,
                            "max_retries": config.max_retries,
                            "retry_in": config.retry_interval,
                        },
                        error=error,
                    )
            self._emit(event)

            if failed:
                self.logger.error(
                    "Server %s failed after %d attempt(s): %s", server_id, attempts, error
                )
                raise ServerFailedError(server_id, error, attempts)

            self.logger.warning(
                "Connect attempt %d/%d to %s failed: %s",
                attempts,
                max_attempts,
                server_id,
                error,
            )
            await asyncio.sleep(config.retry_interval)

    async def disconnect(self, server_id: str) -> ConnectionStatus:
        """Disconnect a server, cancelling any in-flight attempt or heartbeat.

        A failed server stays failed; use reset() to clear it.
        """
        event = None
        with self._lock:
            entry = self._require(server_id)
            tasks = [
                task
                for task in (entry.attempt_task, entry.heartbeat_task)
                if task is not None and not task.done()
            ]
            entry.attempt_task = None
            entry.heartbeat_task = None

            status = entry.status
            previous = status.state
            if previous not in (ConnectionState.DISCONNECTED, ConnectionState.FAILED):
                status.connected = False
                status.state = ConnectionState.DISCONNECTED
                event = self._event(
                    server_id,
                    entry,
                    "disconnected",
                    data={"reason": "requested", "previous_state": previous.value},
                )
            snapshot = status.model_copy()

        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        if event is not None:
            self._emit(event)
            self.logger.info("Disconnected from %s", server_id)

        pending = [task for task in tasks if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return snapshot

    def reset(self, server_id: str) -> ConnectionStatus:
        """Clear a failed server back to disconnected so it can connect again."""
        with self._lock:
            entry = self._require(server_id)
            status = entry.status
            if status.state is not ConnectionState.FAILED:
                return status.model_copy()

            status.state = ConnectionState.DISCONNECTED
            status.connected = False
            status.attempts = 0
            status.error = None
            event = self._event(
                server_id, entry, "disconnected", data={"reason": "reset"}
            )
            snapshot = status.model_copy()

        self._emit(event)
        self.logger.info("Reset failed server %s", server_id)
        return snapshot

    async def close(self) -> None:
        """Disconnect every registered server."""
        await asyncio.gather(*(self.disconnect(server_id) for server_id in self.server_ids))

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_heartbeat(self, server_id: str, entry: _ServerEntry) -> None:
        interval = entry.config.connection.heartbeat_interval
        if not interval:
            return
        with self._lock:
            if entry.heartbeat_task is not None and not entry.heartbeat_task.done():
                return
            entry.heartbeat_task = asyncio.get_running_loop().create_task(
                self._heartbeat_loop(server_id, entry, interval),
                name=f"heartbeat:{server_id}",
            )

    async def _heartbeat_loop(self, server_id: str, entry: _ServerEntry, interval: float) -> None:
        timeout = entry.config.connection.timeout

        while True:
            await asyncio.sleep(interval)

            started = time.perf_counter()
            try:
                await asyncio.wait_for(
                    self._heartbeat_probe(server_id, entry.config), timeout=timeout
                )
            except asyncio.TimeoutError:
                error = f"Heartbeat timed out after {timeout}s"
            except Exception as e:
                error = str(e) or type(e).__name__
            else:
                with self._lock:
                    if not self._owns_heartbeat(entry):
                        return
                    entry.status.latency = (time.perf_counter() - started) * 1000
                continue

            with self._lock:
                if not self._owns_heartbeat(entry):
                    return
                entry.status.connected = False
                entry.status.state = ConnectionState.DISCONNECTED
                entry.status.error = error
                entry.heartbeat_task = None
                event = self._event(
                    server_id,
                    entry,
                    "disconnected",
                    data={"reason": "heartbeat_failed"},
                    error=error,
                )
            self._emit(event)
            self.logger.warning("Heartbeat to %s failed: %s", server_id, error)
            return

    @staticmethod
    def _owns_heartbeat(entry: _ServerEntry) -> bool:
        # Caller holds the lock. False once disconnect() detached this loop,
        # even if its cancel was swallowed by wait_for.
        return (
            entry.heartbeat_task is asyncio.current_task()
            and entry.status.state is ConnectionState.CONNECTED
        )

    async def health_check(self, server_id: str) -> bool:
        """Probe a connected server once without changing its state."""
        with self._lock:
            entry = self._servers.get(server_id)
            if entry is None or entry.status.state is not ConnectionState.CONNECTED:
                return False
            config = entry.config

        try:
            await asyncio.wait_for(
                self._heartbeat_probe(server_id, config), timeout=config.connection.timeout
            )
        except asyncio.TimeoutError:
            self.logger.warning("Health check for %s timed out", server_id)
            return False
        except Exception as e:
            self.logger.warning("Health check for %s failed: %s", server_id, e)
            return False
        return True


def _consume_result(task: asyncio.Task) -> None:
    # Marks the exception retrieved when every caller went away before the
    # attempt finished.
    if not task.cancelled():
        task.exception()
