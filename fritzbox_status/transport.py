"""
HTTP Transport for Fritz!Box Status Client
==========================================

This module performs the raw HTTP exchanges with the Fritz!Box: GET with a
pre-encoded query string, POST with a URL-encoded form, and reading the body
as text or XML. Every call takes a CancellationToken; when it fires after the
request was dispatched, the in-flight response is closed and
FritzBoxCancelledError is raised instead of a transport error.

No retries happen here. The only retry in the library is the session's
re-login on idle timeout.

License: MIT
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Optional, Union
from urllib.parse import quote
from xml.etree.ElementTree import Element

import requests
from defusedxml import DefusedXmlException, ElementTree
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .cancellation import CancellationToken, ensure_token
from .exceptions import (
    FritzBoxCancelledError,
    FritzBoxHTTPError,
    FritzBoxProtocolError,
    FritzBoxTimeoutError,
    wrap_connection_error,
)

logger = logging.getLogger("fritzbox-status")

DEFAULT_TIMEOUT = (3, 12)
READ_CHUNK_SIZE = 4096

Parameters = Union[Mapping[str, str], Iterable[tuple[str, str]]]


def encode_parameter(key: str, value: str) -> str:
    """
    Percent-encode one ``key=value`` pair.

    Only RFC 3986 unreserved characters stay literal, which matches what the
    Fritz!Box web UI sends.
    """
    return f"{key}={quote(value, safe='')}"


def urlencode_parameters(parameters: Parameters) -> str:
    """Percent-encode parameters into ``k1=v1&k2=v2`` form."""
    pairs = parameters.items() if isinstance(parameters, Mapping) else parameters
    return "&".join(encode_parameter(key, value) for key, value in pairs)


def build_base_url(host: str) -> str:
    """Turn a hostname (or full URL) into the device base URL without trailing slash."""
    host = host.strip()
    if "://" not in host:
        host = f"http://{host}"
    return host.rstrip("/")


def create_fritzbox_session(pool_maxsize: int = 4) -> requests.Session:
    """
    Create a requests Session for Fritz!Box access.

    The connection pool is sized for the parallel partition fetches, and the
    adapter never retries on its own.

    Args:
        pool_maxsize: Number of pooled connections to keep per host

    Returns:
        Configured requests.Session
    """
    session = requests.Session()

    # Re-login on idle timeout is the only retry
    retry_strategy = Retry(total=0, connect=0, read=0, redirect=0, status=0, raise_on_status=False)

    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=max(pool_maxsize, 1),
        max_retries=retry_strategy,
        pool_block=False,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update(
        {
            "User-Agent": "FritzBoxStatusClient/1.0",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )

    logger.debug(f"🔧 Created Fritz!Box session (pool size {pool_maxsize})")
    return session


class FritzBoxTransport:
    """Performs cancellable HTTP exchanges against one Fritz!Box."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: tuple = DEFAULT_TIMEOUT,
        pool_maxsize: int = 4,
    ):
        """
        Initialize the transport.

        Args:
            base_url: Device base URL, e.g. ``http://fritz.box``
            session: HTTP session to use (created when omitted)
            timeout: Request timeout (connect, read)
            pool_maxsize: Connection pool size for a created session
        """
        self.base_url = build_base_url(base_url)
        self.session = session or create_fritzbox_session(pool_maxsize)
        self.timeout = timeout

    def url_for(self, path: str, query: Optional[str] = None) -> str:
        """Absolute URL for ``path`` with an already encoded query string."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{query}"
        return url

    def get_text(self, path: str, query: Optional[str] = None, cancel: Optional[CancellationToken] = None) -> str:
        """GET ``path`` and return the body as text."""
        return self._request("GET", self.url_for(path, query), cancel)

    def post_form(
        self,
        path: str,
        form: Parameters,
        query: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """POST ``form`` URL-encoded to ``path`` and return the body as text."""
        body = urlencode_parameters(form)
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        return self._request("POST", self.url_for(path, query), cancel, data=body.encode("utf-8"), headers=headers)

    def get_xml(self, path: str, query: Optional[str] = None, cancel: Optional[CancellationToken] = None) -> Element:
        """GET ``path`` and parse the body as XML."""
        return parse_xml(self.get_text(path, query, cancel))

    def post_form_xml(
        self,
        path: str,
        form: Parameters,
        query: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Element:
        """POST ``form`` to ``path`` and parse the body as XML."""
        return parse_xml(self.post_form(path, form, query, cancel))

    def close(self) -> None:
        self.session.close()

    def _request(self, method: str, url: str, cancel: Optional[CancellationToken], **kwargs) -> str:
        """Dispatch one request, reading the body in chunks so it can be aborted."""
        cancel = ensure_token(cancel)
        cancel.raise_if_cancelled()

        logger.debug(f"📤 {method} {url.split('?', 1)[0]}")

        try:
            response = self.session.request(method, url, stream=True, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            if cancel.cancelled:
                raise FritzBoxCancelledError(details={"url": url.split("?", 1)[0]}) from e
            raise self._wrap_request_error(e) from e

        unregister = cancel.register(response.close)
        try:
            chunks = []
            for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
                cancel.raise_if_cancelled()
                chunks.append(chunk)
        except FritzBoxCancelledError:
            raise
        except Exception as e:
            # A response closed by a cancellation callback fails in varied ways
            if cancel.cancelled:
                raise FritzBoxCancelledError(details={"url": url.split("?", 1)[0]}) from e
            if isinstance(e, requests.exceptions.RequestException):
                raise self._wrap_request_error(e) from e
            raise
        finally:
            unregister()
            response.close()

        cancel.raise_if_cancelled()

        content = b"".join(chunks)
        if response.status_code != 200:
            raise FritzBoxHTTPError(
                f"HTTP {response.status_code} response from Fritz!Box",
                status_code=response.status_code,
                details={"url": url.split("?", 1)[0], "response_text": content[:500].decode("utf-8", errors="replace")},
            )

        text = content.decode("utf-8-sig", errors="replace")
        logger.debug(f"📥 Response: {len(text)} chars")
        return text

    def _wrap_request_error(self, error: requests.exceptions.RequestException) -> Exception:
        host = self.base_url.split("://", 1)[-1]
        if isinstance(error, requests.exceptions.Timeout):
            return FritzBoxTimeoutError(
                f"Request to {host} timed out",
                details={"host": host, "timeout": self.timeout, "original_error": str(error)},
            )
        if isinstance(error, requests.exceptions.ConnectionError):
            return wrap_connection_error(error, host)
        return FritzBoxHTTPError(
            f"HTTP request to {host} failed",
            details={"host": host, "error_type": type(error).__name__, "original_error": str(error)},
        )


def parse_xml(text: str) -> Element:
    """Parse a device XML document, rejecting entity tricks."""
    try:
        return ElementTree.fromstring(text)
    except (ElementTree.ParseError, DefusedXmlException) as e:
        raise FritzBoxProtocolError(
            "Failed to parse XML response",
            details={"parse_error": str(e), "response": text[:200]},
        ) from e


__all__ = [
    "FritzBoxTransport",
    "build_base_url",
    "create_fritzbox_session",
    "encode_parameter",
    "parse_xml",
    "urlencode_parameters",
]
