"""Network condition monitoring with a timed HEAD probe."""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, List, Optional, Union
from urllib.parse import urlsplit

import aiohttp

from src.core.models import ConnectionSpeed, ConnectionState
from src.network.http_session import create_session

logger = logging.getLogger(__name__)


PlatformCheck = Callable[[], Union[bool, Awaitable[bool]]]
StateListener = Callable[[ConnectionState], Awaitable[None]]


@dataclass
class ProbeConfig:
    """Configuration for connection probes."""
    probe_url: str = "https://www.google.com/favicon.ico"
    probe_timeout: float = 5.0
    slow_threshold: float = 2.0
    interval_seconds: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> 'ProbeConfig':
        return cls(
            probe_url=settings.probe_url,
            probe_timeout=settings.probe_timeout,
            slow_threshold=settings.slow_threshold,
            interval_seconds=settings.probe_interval,
        )


class ConnectionMonitor:
    """
    Tracks whether uploads can start and how fast the link is.

    Usage:
        monitor = ConnectionMonitor()
        await monitor.start()        # immediate check, then every 30s
        if monitor.state.can_upload: ...
        await monitor.notify_platform_change(False)   # OS went offline
        await monitor.stop()
    """

    def __init__(self, config: Optional[ProbeConfig] = None,
                 platform_check: Optional[PlatformCheck] = None,
                 session_factory: Optional[Callable[..., aiohttp.ClientSession]] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or ProbeConfig()
        self._platform_check = platform_check or self._resolve_probe_host
        self._session_factory = session_factory or create_session
        self._clock = clock
        self._state = ConnectionState()
        self._listeners: List[StateListener] = []
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def add_listener(self, callback: StateListener) -> None:
        """Add state change listener."""
        self._listeners.append(callback)

    def remove_listener(self, callback: StateListener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _resolve_probe_host(self) -> bool:
        """Offline when the probe host cannot be resolved."""
        host = urlsplit(self.config.probe_url).hostname
        if not host:
            return True
        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(loop.getaddrinfo(host, None), self.config.probe_timeout)
            return True
        except (OSError, asyncio.TimeoutError):
            return False

    async def _platform_online(self) -> bool:
        result = self._platform_check()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def _probe(self) -> float:
        """HEAD the probe URL; return the round trip in seconds."""
        start = self._clock()
        async with self._session_factory(self.config.probe_timeout) as session:
            async with session.head(self.config.probe_url, allow_redirects=True) as response:
                await response.read()
        return self._clock() - start

    async def check(self) -> ConnectionState:
        """Classify the connection once.

        Returns:
            The new ConnectionState
        """
        if not await self._platform_online():
            await self._set_state(ConnectionState(online=False, speed=ConnectionSpeed.OFFLINE))
            return self._state

        try:
            elapsed = await self._probe()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Connection probe failed: {e}")
            await self._set_state(replace(self._state, speed=ConnectionSpeed.SLOW))
            return self._state

        speed = ConnectionSpeed.SLOW if elapsed > self.config.slow_threshold else ConnectionSpeed.FAST
        logger.log(5, f"Connection probe took {elapsed:.2f}s ({speed.value})")
        await self._set_state(ConnectionState(online=True, speed=speed))
        return self._state

    async def notify_platform_change(self, online: bool) -> None:
        """Handle an OS online/offline transition event."""
        if not online:
            await self._set_state(ConnectionState(online=False, speed=ConnectionSpeed.OFFLINE))
        else:
            await self.check()

    async def start(self) -> None:
        """Check once, then keep checking every interval in the background."""
        if self._running:
            return
        self._running = True
        await self._safe_check()
        self._task = asyncio.create_task(self._check_loop())

    async def stop(self) -> None:
        """Stop periodic checking."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _check_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.interval_seconds)
            await self._safe_check()

    async def _safe_check(self) -> None:
        try:
            await self.check()
        except Exception as e:
            logger.error(f"Connection check error: {e}")

    async def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        logger.info(f"Connection state: online={new_state.online} speed={new_state.speed.value}")
        await self._notify_listeners(new_state)

    async def _notify_listeners(self, state: ConnectionState) -> None:
        for listener in list(self._listeners):
            try:
                await listener(state)
            except Exception as e:
                logger.error(f"Connection listener error: {e}")
