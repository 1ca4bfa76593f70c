"""Connection lifecycle supervisor for the token stream."""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from .models import ConnectionStatus
from .utils.logging import log_with_context
from .utils.retry import FixedDelay, ReconnectPolicy

logger = logging.getLogger(__name__)

StatusListener = Callable[[ConnectionStatus, Optional[str]], None]


class ConnectionSupervisor:
    """
    Drives a transport through Disconnected -> Connecting -> Connected and back,
    reconnecting forever after every loss.

    Every transition reads the supervisor's own live fields; at most one
    connection task and at most one pending reconnect exist at any time. After
    ``shutdown`` no transition happens and no reconnect is scheduled.

    Messages are handed to ``on_message`` one at a time in arrival order. The
    handler may be a plain function or a coroutine function; if it raises, the
    error is logged and the connection stays up.
    """

    def __init__(
        self,
        transport,
        on_message: Callable[[Any], Any],
        policy: Optional[ReconnectPolicy] = None
    ):
        self.transport = transport
        self.on_message = on_message
        self.policy = policy or FixedDelay()

        self._status = ConnectionStatus.DISCONNECTED
        self._last_error: Optional[str] = None
        self._connection_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempts = 0
        self._shut_down = False
        self._status_listeners: List[StatusListener] = []

        self.stats = {
            'connection_attempts': 0,
            'connections_opened': 0,
            'disconnects': 0,
            'transport_errors': 0,
            'reconnects_scheduled': 0,
            'messages_handled': 0,
            'handler_errors': 0,
            'last_message_time': None,
        }

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def add_status_listener(self, listener: StatusListener):
        """Register a callback invoked with (status, last_error) on every transition."""
        self._status_listeners.append(listener)

    def start(self) -> bool:
        """
        Begin a connection attempt.

        Returns:
            False if shut down or a connection attempt is already live
        """
        if self._shut_down:
            logger.warning("Supervisor is shut down, ignoring start")
            return False

        if self._connection_task is not None and not self._connection_task.done():
            logger.debug("Connection attempt already in progress")
            return False

        self._set_status(ConnectionStatus.CONNECTING)
        self.stats['connection_attempts'] += 1
        self._connection_task = asyncio.create_task(self._run_connection())
        return True

    async def shutdown(self):
        """Cancel any pending reconnect and close the live connection."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down connection supervisor")

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        task = self._connection_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._close_transport()
        logger.info("Connection supervisor stopped")

    async def _run_connection(self):
        try:
            await self.transport.open()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._on_error(e)
            return

        self._on_open()

        try:
            async for raw_message in self.transport.receive():
                await self._dispatch(raw_message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._close_transport()
            self._on_error(e)
            return

        await self._close_transport()
        self._on_close()

    async def _dispatch(self, raw_message):
        self.stats['messages_handled'] += 1
        self.stats['last_message_time'] = time.time()

        try:
            result = self.on_message(raw_message)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.stats['handler_errors'] += 1
            logger.error(f"Message handler error: {e}", exc_info=True)

    def _on_open(self):
        if self._shut_down:
            return
        self._reconnect_attempts = 0
        self._last_error = None
        self.stats['connections_opened'] += 1
        self._set_status(ConnectionStatus.CONNECTED)

    def _on_close(self):
        if self._shut_down:
            return
        self.stats['disconnects'] += 1
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._schedule_reconnect()

    def _on_error(self, error: Exception):
        if self._shut_down:
            return
        self.stats['transport_errors'] += 1
        self._last_error = str(error) or type(error).__name__
        log_with_context(
            logger, logging.ERROR,
            f"Token stream error: {self._last_error}",
            url=getattr(self.transport, 'url', None),
            error_type=type(error).__name__
        )
        self._set_status(ConnectionStatus.ERRORED)
        self._on_close()

    def _schedule_reconnect(self) -> bool:
        if self._shut_down:
            return False

        if self.reconnect_pending:
            logger.debug("Reconnect already pending, not scheduling another")
            return False

        self._reconnect_attempts += 1
        delay = self.policy.next_delay(self._reconnect_attempts)
        self.stats['reconnects_scheduled'] += 1
        logger.info(f"Reconnection attempt {self._reconnect_attempts} in {delay:.2f}s")

        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))
        return True

    async def _reconnect_after(self, delay: float):
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if not self._shut_down:
            self.start()

    async def _close_transport(self):
        try:
            await self.transport.close()
        except Exception as e:
            logger.warning(f"Error closing transport: {e}")

    def _set_status(self, status: ConnectionStatus):
        if self._shut_down:
            return

        previous, self._status = self._status, status
        if previous is not status:
            logger.info(f"Connection status: {previous.value} -> {status.value}")

        for listener in list(self._status_listeners):
            try:
                listener(status, self._last_error)
            except Exception as e:
                logger.error(f"Status listener error: {e}", exc_info=True)

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        last_message_age = None
        if self.stats['last_message_time']:
            last_message_age = time.time() - self.stats['last_message_time']

        return {
            **self.stats,
            'status': self._status.value,
            'last_error': self._last_error,
            'reconnect_attempts': self._reconnect_attempts,
            'reconnect_pending': self.reconnect_pending,
            'last_message_age_seconds': last_message_age,
        }

    def health_check(self) -> Dict[str, Any]:
        """Report whether the stream is currently usable."""
        stats = self.get_stats()
        issues = []

        if self._status is not ConnectionStatus.CONNECTED:
            issues.append(f"Token stream {self._status.value.lower()}")
        if self._last_error:
            issues.append(f"Last error: {self._last_error}")

        return {
            'status': 'healthy' if not issues else 'degraded',
            'issues': issues,
            'stats': stats,
        }
