"""Error capture client relaying application errors to a diagnostics service.

The client keeps the most recent ``max_errors`` events in memory and forwards
each one over a WebSocket (when connected) and as an HTTP POST to
``<service_url>/errors``. Interception is explicit: ``init()`` installs a
logging handler, ``sys.excepthook`` and the asyncio exception handler, and
HTTP clients opt in by passing ``trace_config()`` to their
``aiohttp.ClientSession``. ``destroy()`` undoes all of it.

Nothing raised inside the client reaches the host application. Internal
failures are logged at DEBUG on this module's logger, which the capture
handler ignores.
"""
import asyncio
import json
import logging
import sys
import time
import traceback
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Deque, Dict, List, Optional

import aiohttp

from ..core.config import settings

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_error_id() -> str:
    return f"error_{_now_ms()}_{uuid.uuid4().hex[:9]}"


@dataclass
class ErrorCaptureConfig:
    service_url: str = "http://localhost:3002"
    ws_url: str = "ws://localhost:3003"
    enabled: bool = True
    capture_logging: bool = True
    capture_network: bool = True
    capture_unhandled: bool = True
    max_errors: int = 100
    reconnect_interval: float = 5.0
    # logger the capture handler is attached to; None means the root logger
    logger_name: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "ErrorCaptureConfig":
        return cls(
            service_url=settings.ERROR_CAPTURE_SERVICE_URL,
            ws_url=settings.ERROR_CAPTURE_WS_URL,
            enabled=settings.ERROR_CAPTURE_ENABLED,
            max_errors=settings.ERROR_CAPTURE_MAX_ERRORS,
            reconnect_interval=settings.ERROR_CAPTURE_RECONNECT_INTERVAL,
        )


@dataclass
class CapturedError:
    type: str  # application | network | resource
    severity: str  # low | medium | high | critical
    message: str
    source: str = "logging"
    stack: Optional[str] = None
    url: Optional[str] = None
    status_code: Optional[int] = None
    context: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_error_id)
    timestamp: int = field(default_factory=_now_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "stack": self.stack,
            "url": self.url,
            "statusCode": self.status_code,
            "timestamp": self.timestamp,
            "source": self.source,
            "context": self.context,
        }


class CaptureLogHandler(logging.Handler):
    """Turns WARNING and ERROR records into captured errors."""

    def __init__(self, client: "ErrorCaptureClient"):
        super().__init__(level=logging.WARNING)
        self.client = client

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == logger.name or record.name.startswith(logger.name + "."):
            return
        try:
            stack = None
            if record.exc_info:
                stack = "".join(traceback.format_exception(*record.exc_info))
            self.client.capture(CapturedError(
                type="application",
                severity="high" if record.levelno >= logging.ERROR else "medium",
                message=record.getMessage(),
                stack=stack,
                source="logging",
                context={"logger": record.name, "file": record.pathname, "line": record.lineno, "function": record.funcName},
            ))
        except Exception as e:
            logger.debug(f"Log capture failed: {e}")


class ErrorCaptureClient:
    def __init__(self, config: Optional[ErrorCaptureConfig] = None, session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None):
        self.config = config or ErrorCaptureConfig()
        self._session_factory = session_factory or aiohttp.ClientSession
        self._errors: Deque[CapturedError] = deque(maxlen=self.config.max_errors)
        self._handler: Optional[CaptureLogHandler] = None
        self._previous_excepthook = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_loop_handler = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._relay_task: Optional[asyncio.Task] = None
        self._tasks: set = set()
        self._closing = False
        self.initialized = False
        self.last_pong: Optional[int] = None

    # lifecycle

    def init(self) -> "ErrorCaptureClient":
        if self.initialized:
            return self
        try:
            self._closing = False
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                self._loop = None
            if self.config.capture_logging:
                self._handler = CaptureLogHandler(self)
                logging.getLogger(self.config.logger_name).addHandler(self._handler)
            if self.config.capture_unhandled:
                self._previous_excepthook = sys.excepthook
                sys.excepthook = self._excepthook
                if self._loop is not None:
                    self._previous_loop_handler = self._loop.get_exception_handler()
                    self._loop.set_exception_handler(self._loop_exception_handler)
            if self._loop is not None and self.config.ws_url:
                self._relay_task = self._loop.create_task(self._relay())
            self.initialized = True
            logger.debug("Error capture initialized")
        except Exception as e:
            logger.debug(f"Error capture init failed: {e}")
        return self

    async def destroy(self) -> None:
        self._closing = True
        try:
            if self._handler is not None:
                logging.getLogger(self.config.logger_name).removeHandler(self._handler)
                self._handler = None
            if self._previous_excepthook is not None:
                sys.excepthook = self._previous_excepthook
                self._previous_excepthook = None
            if self._loop is not None and self._loop.get_exception_handler() == self._loop_exception_handler:
                self._loop.set_exception_handler(self._previous_loop_handler)
            self._previous_loop_handler = None

            pending = [t for t in self._tasks if not t.done()]
            if self._relay_task is not None:
                pending.append(self._relay_task)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.clear()
            self._relay_task = None

            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
            self._ws = None
            if self._session is not None and not self._session.closed:
                await self._session.close()
            self._session = None
        except Exception as e:
            logger.debug(f"Error capture teardown failed: {e}")
        finally:
            self._errors.clear()
            self._loop = None
            self.initialized = False

    # public API

    def enable(self) -> None:
        self.config.enabled = True

    def disable(self) -> None:
        self.config.enabled = False

    def get_errors(self) -> List[CapturedError]:
        return list(self._errors)

    def clear_errors(self) -> None:
        self._errors.clear()

    def get_config(self) -> Dict[str, Any]:
        return asdict(self.config)

    def update_config(self, **changes: Any) -> Dict[str, Any]:
        known = {f.name for f in fields(self.config)}
        for key, value in changes.items():
            if key not in known:
                logger.debug(f"Ignoring unknown error capture option '{key}'")
                continue
            setattr(self.config, key, value)
        if self._errors.maxlen != self.config.max_errors:
            self._errors = deque(self._errors, maxlen=self.config.max_errors)
        return self.get_config()

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def ping(self) -> bool:
        if not self.connected:
            return False
        self._schedule(self._send_ws({"type": "ping", "timestamp": _now_ms()}))
        return True

    def capture(self, error: CapturedError) -> None:
        if not self.config.enabled:
            return
        try:
            self._errors.append(error)
            payload = error.to_dict()
            if self.connected:
                self._schedule(self._send_ws({"type": "error", "data": payload, "timestamp": _now_ms()}))
            self._schedule(self._post(payload))
        except Exception as e:
            logger.debug(f"Capture failed: {e}")

    def capture_exception(self, exc: BaseException, severity: str = "high", source: str = "server", url: Optional[str] = None) -> None:
        self.capture(CapturedError(
            type="application",
            severity=severity,
            message=f"{type(exc).__name__}: {exc}",
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            source=source,
            url=url,
        ))

    def trace_config(self) -> aiohttp.TraceConfig:
        """Trace hooks recording failed requests of any aiohttp session they are attached to."""
        trace = aiohttp.TraceConfig()
        trace.on_request_end.append(self._on_request_end)
        trace.on_request_exception.append(self._on_request_exception)
        return trace

    # hooks

    def _excepthook(self, exc_type, exc, tb) -> None:
        try:
            self.capture(CapturedError(
                type="application",
                severity="critical",
                message=f"{exc_type.__name__}: {exc}",
                stack="".join(traceback.format_exception(exc_type, exc, tb)),
                source="unhandled",
            ))
        except Exception as e:
            logger.debug(f"excepthook capture failed: {e}")
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        try:
            self.capture(CapturedError(
                type="application",
                severity="high",
                message=f"Unhandled async error: {exc if exc is not None else context.get('message')}",
                stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)) if exc is not None else None,
                source="unhandled",
            ))
        except Exception as e:
            logger.debug(f"Loop exception capture failed: {e}")
        if self._previous_loop_handler is not None:
            self._previous_loop_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    def _is_own_traffic(self, url: Any) -> bool:
        return str(url).startswith(self.config.service_url)

    async def _on_request_end(self, session, ctx, params) -> None:
        if not (self.config.capture_network and params.response.status >= 400):
            return
        if self._is_own_traffic(params.url):
            return
        status = params.response.status
        self.capture(CapturedError(
            type="network",
            severity="high" if status >= 500 else "medium",
            message=f"HTTP {status}: {params.method} {params.url}",
            url=str(params.url),
            status_code=status,
            source="network",
        ))

    async def _on_request_exception(self, session, ctx, params) -> None:
        if not self.config.capture_network or self._is_own_traffic(params.url):
            return
        self.capture(CapturedError(
            type="network",
            severity="high",
            message=f"Network error: {params.method} {params.url}: {params.exception}",
            url=str(params.url),
            source="network",
        ))

    # transport

    def _schedule(self, coro) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or self._closing:
            coro.close()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._track(loop.create_task(coro))
        else:
            # logging may happen on worker threads
            loop.call_soon_threadsafe(lambda: self._track(loop.create_task(coro)))

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = self._session_factory()
        return self._session

    async def _post(self, payload: Dict[str, Any]) -> None:
        try:
            async with self._http().post(
                f"{self.config.service_url}/errors",
                json=payload,
                timeout=aiohttp.ClientTimeout(total=5),
            ) as resp:
                await resp.read()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Error POST failed: {e}")

    async def _send_ws(self, message: Dict[str, Any]) -> None:
        try:
            if self.connected:
                await self._ws.send_str(json.dumps(message))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"WebSocket send failed: {e}")

    def _on_message(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            return
        if message.get("type") == "pong":
            self.last_pong = message.get("timestamp") or _now_ms()

    async def _relay(self) -> None:
        # fixed reconnect interval, no backoff
        while not self._closing:
            try:
                async with self._http().ws_connect(self.config.ws_url) as ws:
                    self._ws = ws
                    logger.debug(f"Connected to {self.config.ws_url}")
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self._on_message(msg.data)
                        elif msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSED):
                            break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"WebSocket connection failed: {e}")
            finally:
                self._ws = None
            if self._closing:
                break
            await asyncio.sleep(self.config.reconnect_interval)
