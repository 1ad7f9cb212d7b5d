import threading
from urllib.parse import unquote

import pytest

from fritzbox_status.client.main import FritzBoxSession
from fritzbox_status.models import INVALID_SID
from fritzbox_status.transport import parse_xml, urlencode_parameters

VALID_SID = "8d3e1a4c9f0b7e21"
CHALLENGE = "1234567z"


def login_xml(sid: str = INVALID_SID, challenge: str = CHALLENGE) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        "<SessionInfo>"
        f"<SID>{sid}</SID>"
        f"<Challenge>{challenge}</Challenge>"
        "<BlockTime>0</BlockTime>"
        "<Rights></Rights>"
        "</SessionInfo>"
    )


def query_response(items) -> str:
    """Build a query.lua body from (index, value) pairs."""
    lines = [f'"a{index}": "{value}"' for index, value in items]
    return "{\n" + ",\n".join(lines) + "\n}\n"


def parse_query_string(query: str) -> list[tuple[str, str]]:
    pairs = []
    for part in query.split("&"):
        if not part:
            continue
        key, _, value = part.partition("=")
        pairs.append((key, unquote(value)))
    return pairs


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport:
    """
    In-memory Fritz!Box.

    Answers the login, query, home and webcm endpoints and records every
    call as ``(method, path, query, form)``.
    """

    def __init__(self, values=None):
        self.base_url = "http://fritz.box"
        self.sid = VALID_SID
        self.challenge = CHALLENGE
        self.accept_login = True
        self.session_valid = True
        self.values = dict(values or {})
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def _record(self, method, path, query, form):
        with self._lock:
            self.calls.append((method, path, query, form))

    def calls_to(self, method, path):
        with self._lock:
            return [c for c in self.calls if c[0] == method and c[1] == path]

    def get_text(self, path, query=None, cancel=None):
        self._record("GET", path, query, None)
        if cancel is not None:
            cancel.raise_if_cancelled()

        if path == "/login_sid.lua":
            if query and self.session_valid:
                return login_xml(self.sid)
            return login_xml(INVALID_SID, self.challenge)

        if path == "/query.lua":
            items = []
            for key, command in parse_query_string(query):
                if key.startswith("a"):
                    items.append((key[1:], self.values.get(command, "")))
            return query_response(items)

        raise AssertionError(f"unexpected GET {path}")

    def post_form(self, path, form, query=None, cancel=None):
        pairs = list(form.items()) if isinstance(form, dict) else list(form)
        self._record("POST", path, query, pairs)
        if cancel is not None:
            cancel.raise_if_cancelled()

        if path == "/login_sid.lua":
            if self.accept_login:
                self.session_valid = True
                return login_xml(self.sid)
            return login_xml(INVALID_SID, self.challenge)

        if path == "/home/home.lua":
            return '<html><a href="/login.lua">Login</a></html>'

        if path == "/cgi-bin/webcm":
            return urlencode_parameters(pairs)

        raise AssertionError(f"unexpected POST {path}")

    def get_xml(self, path, query=None, cancel=None):
        return parse_xml(self.get_text(path, query, cancel))

    def post_form_xml(self, path, form, query=None, cancel=None):
        return parse_xml(self.post_form(path, form, query, cancel))

    def close(self):
        self.closed = True


@pytest.fixture
def fake_transport():
    """Fake Fritz!Box answering with canned responses."""
    return FakeTransport()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def session_factory(fake_transport, fake_clock):
    """Create sessions bound to the fake transport and clock."""

    def create(**kwargs):
        kwargs.setdefault("password", "test_password")
        kwargs.setdefault("transport", fake_transport)
        kwargs.setdefault("clock", fake_clock)
        return FritzBoxSession(**kwargs)

    return create


@pytest.fixture
def logged_in_session(session_factory):
    session = session_factory()
    session.login()
    return session
