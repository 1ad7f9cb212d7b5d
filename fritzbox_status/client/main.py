"""
Main Fritz!Box Status Client
============================

This module contains the session object for the Fritz!Box HTTP interface.

A FritzBoxSession holds the current session id and the time of the last
successful call. Every authenticated operation first runs
``force_session()``, which re-validates an idle session with the device and,
if enabled, logs in again.

Example:
    >>> with FritzBoxSession(password="secret") as session:
    ...     session.login()
    ...     firmware = session.query_value("logic:status/nspver")

License: MIT
"""

import logging
import time
from collections.abc import Iterable, Mapping
from typing import Any, Optional, Union

from fritzbox_status.cancellation import CancellationToken, ensure_token
from fritzbox_status.client.auth import SessionAuthenticator
from fritzbox_status.client.query import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_URL_LENGTH,
    ProgressCallback,
    QueryExecutor,
    partition_query_items,
    query_prefix,
    sequence_results,
)
from fritzbox_status.exceptions import FritzBoxConfigurationError, FritzBoxSessionError
from fritzbox_status.instrumentation import PerformanceInstrumentation
from fritzbox_status.models import LastActionTimer, SessionId
from fritzbox_status.transport import DEFAULT_TIMEOUT, FritzBoxTransport

logger = logging.getLogger("fritzbox-status")

DEFAULT_HOST = "fritz.box"
# 9.5 minutes, just under the device's own 10 minute session lifetime
DEFAULT_IDLE_TIMEOUT = 570.0

URL_WEBCM = "/cgi-bin/webcm"


class FritzBoxSession:
    """
    Session with a Fritz!Box (Fritz!OS 5.50 and newer).

    A session starts unauthenticated. ``login()`` obtains a session id,
    ``logout()`` ends it. Query and command operations require a started
    session and refresh the idle timer on success.

    A single session is not meant to run two top-level operations at once
    if both may need to reconnect; serialize such calls.
    """

    def __init__(
        self,
        password: str,
        host: str = DEFAULT_HOST,
        username: Optional[str] = None,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        auto_reconnect: bool = False,
        max_url_length: int = DEFAULT_MAX_URL_LENGTH,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: tuple = DEFAULT_TIMEOUT,
        transport: Optional[FritzBoxTransport] = None,
        enable_instrumentation: bool = False,
        clock=time.monotonic,
    ):
        """
        Initialize the session.

        Args:
            password: Login password (required)
            host: Device hostname or base URL (default: "fritz.box")
            username: Login username, for devices with user accounts
            idle_timeout: Seconds of inactivity before the session is re-checked; <= 0 disables
            auto_reconnect: Log in again when an idle session was invalidated
            max_url_length: Exclusive upper bound for query URLs (default: 2083)
            max_concurrency: Partition fetches in flight at once (default: 4)
            timeout: (connect_timeout, read_timeout) in seconds (default: (3, 12))
            transport: Transport to use instead of a requests based one
            enable_instrumentation: Collect per-operation timings
            clock: Monotonic clock used for the idle timer

        Raises:
            FritzBoxConfigurationError: If a setting is out of range
        """
        if not password:
            raise FritzBoxConfigurationError("Password is required", details={"parameter": "password"})
        if max_url_length <= 0:
            raise FritzBoxConfigurationError(
                "max_url_length must be positive", details={"parameter": "max_url_length", "value": max_url_length}
            )
        if not 1 <= max_concurrency <= DEFAULT_MAX_CONCURRENCY:
            raise FritzBoxConfigurationError(
                f"max_concurrency must be between 1 and {DEFAULT_MAX_CONCURRENCY}",
                details={"parameter": "max_concurrency", "value": max_concurrency},
            )

        self.host = host
        self.username = username
        self.password = password
        self.idle_timeout = idle_timeout
        self.auto_reconnect = auto_reconnect
        self.max_url_length = max_url_length
        self.max_concurrency = max_concurrency
        self.timeout = timeout

        self.session_id = SessionId.invalid()
        self.last_action = LastActionTimer(clock)

        self.instrumentation = PerformanceInstrumentation() if enable_instrumentation else None
        self.transport = transport or FritzBoxTransport(host, timeout=timeout, pool_maxsize=max_concurrency)
        self.authenticator = SessionAuthenticator(self.transport, password, username)
        self.executor = QueryExecutor(self.transport, self.last_action, max_concurrency, self.instrumentation)
        self._marshaller = None

        logger.info(f"🛡️ FritzBoxSession initialized for {self.transport.base_url}")
        logger.debug(
            f"🔧 Idle timeout: {idle_timeout}s, auto reconnect: {auto_reconnect}, "
            f"workers: {max_concurrency}, max URL length: {max_url_length}"
        )

    @property
    def started(self) -> bool:
        """True while the session holds a valid session id."""
        return self.session_id.is_valid

    def _start_timer(self, operation: str) -> float:
        return self.instrumentation.start_timer(operation) if self.instrumentation else time.time()

    def _record(self, operation: str, start_time: float, error: Optional[BaseException] = None, **kwargs) -> None:
        if self.instrumentation:
            self.instrumentation.record_timing(
                operation,
                start_time,
                success=error is None,
                error_type=type(error).__name__ if error is not None else None,
                **kwargs,
            )

    def login(self, cancel: Optional[CancellationToken] = None) -> SessionId:
        """
        Log in, or adopt the current session id if the device still accepts it.

        Returns:
            The new session id

        Raises:
            FritzBoxLoginError: If the device rejects the password
        """
        cancel = ensure_token(cancel)
        cancel.raise_if_cancelled()

        start_time = self._start_timer("login")
        logger.info(f"🔐 Logging in to {self.host}...")

        try:
            sid = self.authenticator.login(self.session_id, cancel)
        except Exception as e:
            self._record("login", start_time, e)
            logger.error(f"❌ Login failed: {e}")
            raise

        self.session_id = sid
        self.last_action.update()
        self._record("login", start_time)

        logger.info(f"🎉 Logged in, session {sid.short}")
        return sid

    def invalidate(self, cancel: Optional[CancellationToken] = None) -> bool:
        """
        Ask the device whether the current session id is still valid.

        The answer replaces the held id, and the idle timer is refreshed
        either way.

        Returns:
            True if the session is still valid, False if it expired or was never started
        """
        if not self.started:
            return False

        cancel = ensure_token(cancel)
        cancel.raise_if_cancelled()

        start_time = self._start_timer("invalidate")
        try:
            sid = self.authenticator.check(self.session_id, cancel)
        except Exception as e:
            self._record("invalidate", start_time, e)
            raise

        self.session_id = sid
        self.last_action.update()
        self._record("invalidate", start_time)

        logger.debug(f"🔍 Session check: {'valid' if sid.is_valid else 'expired'}")
        return sid.is_valid

    def logout(self, cancel: Optional[CancellationToken] = None) -> bool:
        """
        End the session.

        The held id and the idle timer are reset whether or not the device
        confirms the logout.

        Returns:
            True if the device redirected to its login page
        """
        cancel = ensure_token(cancel)
        self.force_session(cancel)

        start_time = self._start_timer("logout")
        logger.info("👋 Logging out...")

        try:
            confirmed = self.authenticator.logout(self.session_id, cancel)
        except Exception as e:
            self._record("logout", start_time, e)
            raise
        finally:
            self.last_action.reset()
            self.session_id = SessionId.invalid()

        self._record("logout", start_time)
        if not confirmed:
            logger.warning("⚠️ Logout was not confirmed by the device")
        return confirmed

    def force_session(self, cancel: Optional[CancellationToken] = None) -> None:
        """
        Make sure the session can be used for an API call.

        Raises:
            FritzBoxSessionError: If the session was never started, or it timed
                out and auto reconnect is disabled
        """
        cancel = ensure_token(cancel)
        cancel.raise_if_cancelled()

        if not self.started:
            raise FritzBoxSessionError("Session not started", details={"host": self.host})

        if self.idle_timeout <= 0:
            return

        elapsed = self.last_action.elapsed()
        if elapsed <= self.idle_timeout:
            return

        logger.info(f"⏰ Session idle for {elapsed:.0f}s, checking with device...")
        if self.invalidate(cancel):
            return

        if not self.auto_reconnect:
            self.last_action.reset()
            self.session_id = SessionId.invalid()
            raise FritzBoxSessionError(
                "Session timed out", details={"host": self.host, "idle_timeout": self.idle_timeout}
            )

        logger.info("🔄 Session expired, reconnecting...")
        self.login(cancel)

    def query(
        self,
        items: Iterable[str],
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> list[str]:
        """
        Query several values at once.

        Args:
            items: Query commands, e.g. ``"sar:status/dsl_train_state"``
            cancel: Cancellation token for the whole query
            progress: Called with ``(done, total)`` as values arrive

        Returns:
            The values in the order of ``items``
        """
        cancel = ensure_token(cancel)
        items = list(items)
        self.force_session(cancel)

        start_time = self._start_timer("query")
        try:
            plan = partition_query_items(items, query_prefix(self.session_id.value), self.max_url_length)
            logger.debug(f"📊 Querying {plan.total} item(s) in {len(plan.partitions)} partition(s)")

            results = self.executor.execute(plan, self.session_id.value, cancel, progress)
            values = sequence_results(results, plan.total)
        except Exception as e:
            self._record("query", start_time, e)
            raise

        self._record("query", start_time)
        return values

    def query_value(self, item: str, cancel: Optional[CancellationToken] = None) -> str:
        """Query a single value."""
        return self.query([item], cancel)[0]

    def query_object(
        self,
        query_object: Any,
        cancel: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> Any:
        """
        Populate every query field of ``query_object`` in one batched query.

        See :class:`fritzbox_status.marshaller.QueryMarshaller`.
        """
        if self._marshaller is None:
            from fritzbox_status.marshaller import QueryMarshaller

            self._marshaller = QueryMarshaller(self)
        self._marshaller.query(query_object, cancel, progress)
        return query_object

    def send_commands(
        self,
        commands: Union[Mapping[str, str], Iterable[tuple[str, str]]],
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """
        Post commands to ``/cgi-bin/webcm``.

        Args:
            commands: Command keys and values, e.g. ``{"logic:command/reboot": "../gateway/commands/saveconfig.html"}``
            cancel: Cancellation token

        Returns:
            The response text
        """
        cancel = ensure_token(cancel)
        self.force_session(cancel)

        pairs = list(commands.items()) if isinstance(commands, Mapping) else list(commands)
        form = [("sid", self.session_id.value)] + pairs

        cancel.raise_if_cancelled()
        start_time = self._start_timer("send_commands")
        try:
            text = self.transport.post_form(URL_WEBCM, form, cancel=cancel)
        except Exception as e:
            self._record("send_commands", start_time, e)
            raise

        self.last_action.update()
        self._record("send_commands", start_time, response_size=len(text))
        logger.debug(f"📤 Sent {len(pairs)} command(s)")
        return text

    def get_performance_metrics(self) -> dict[str, Any]:
        """Get detailed performance metrics from instrumentation."""
        if not self.instrumentation:
            return {"error": "Performance instrumentation not enabled"}

        return self.instrumentation.get_performance_summary()

    def close(self) -> None:
        """Release the HTTP connections. Does not log out."""
        if self.instrumentation:
            summary = self.instrumentation.get_performance_summary()
            total_ops = summary.get("session_metrics", {}).get("total_operations", 0)
            session_time = summary.get("session_metrics", {}).get("total_session_time", 0)
            logger.info(f"📊 Session performance: {total_ops} operations in {session_time:.2f}s")

        self.transport.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def connect(
    password: str,
    host: str = DEFAULT_HOST,
    username: Optional[str] = None,
    cancel: Optional[CancellationToken] = None,
    **kwargs,
) -> FritzBoxSession:
    """
    Create a session and log in.

    Args:
        password: Login password
        host: Device hostname or base URL
        username: Optional login username
        cancel: Cancellation token for the login
        **kwargs: Further FritzBoxSession settings

    Returns:
        A logged in FritzBoxSession
    """
    session = FritzBoxSession(password=password, host=host, username=username, **kwargs)
    try:
        session.login(cancel)
    except Exception:
        session.close()
        raise
    return session


__all__ = ["DEFAULT_HOST", "DEFAULT_IDLE_TIMEOUT", "FritzBoxSession", "URL_WEBCM", "connect"]
