"""
Tests for the Fritz!Box session lifecycle.

This module covers login, invalidation, logout, the idle timeout handling of
force_session() and the session level query operations.
"""

from unittest.mock import patch

import pytest

from conftest import VALID_SID
from fritzbox_status import connect
from fritzbox_status.cancellation import CancellationToken
from fritzbox_status.client.main import FritzBoxSession
from fritzbox_status.exceptions import (
    FritzBoxCancelledError,
    FritzBoxConfigurationError,
    FritzBoxLoginError,
    FritzBoxSessionError,
)
from fritzbox_status.models import SessionId


@pytest.mark.unit
@pytest.mark.auth
class TestSessionConfiguration:
    """Test constructor defaults and validation."""

    def test_defaults(self, fake_transport):
        session = FritzBoxSession(password="secret", transport=fake_transport)

        assert session.host == "fritz.box"
        assert session.username is None
        assert session.idle_timeout == 570
        assert session.auto_reconnect is False
        assert session.max_url_length == 2083
        assert session.max_concurrency == 4
        assert session.timeout == (3, 12)
        assert session.session_id == SessionId.invalid()
        assert session.started is False

    def test_empty_password_rejected(self, fake_transport):
        with pytest.raises(FritzBoxConfigurationError, match="Password"):
            FritzBoxSession(password="", transport=fake_transport)

    def test_invalid_max_url_length(self, fake_transport):
        with pytest.raises(FritzBoxConfigurationError):
            FritzBoxSession(password="secret", max_url_length=0, transport=fake_transport)

    def test_invalid_max_concurrency(self, fake_transport):
        with pytest.raises(FritzBoxConfigurationError):
            FritzBoxSession(password="secret", max_concurrency=0, transport=fake_transport)

    def test_max_concurrency_above_four_rejected(self, fake_transport):
        with pytest.raises(FritzBoxConfigurationError, match="between 1 and 4") as exc_info:
            FritzBoxSession(password="secret", max_concurrency=10, transport=fake_transport)

        assert exc_info.value.details == {"parameter": "max_concurrency", "value": 10}

    def test_default_transport_uses_host(self):
        session = FritzBoxSession(password="secret", host="192.168.178.1")
        try:
            assert session.transport.base_url == "http://192.168.178.1"
        finally:
            session.close()


@pytest.mark.unit
@pytest.mark.auth
class TestSessionLifecycle:
    """Test login, invalidate and logout."""

    def test_login(self, session_factory, fake_clock):
        session = session_factory()

        sid = session.login()

        assert sid == SessionId(VALID_SID)
        assert session.session_id == sid
        assert session.started is True
        assert session.last_action.value == fake_clock.now

    def test_failed_login_keeps_session_unstarted(self, session_factory, fake_transport):
        fake_transport.accept_login = False
        session = session_factory(password="wrong")

        with pytest.raises(FritzBoxLoginError):
            session.login()

        assert session.started is False
        assert session.last_action.value is None

    def test_login_cancelled_before_network(self, session_factory, fake_transport):
        session = session_factory()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(FritzBoxCancelledError):
            session.login(token)

        assert fake_transport.calls == []

    def test_invalidate_not_started(self, session_factory, fake_transport):
        session = session_factory()

        assert session.invalidate() is False
        assert fake_transport.calls == []

    def test_invalidate_valid_session(self, logged_in_session, fake_transport, fake_clock):
        fake_clock.advance(30)

        assert logged_in_session.invalidate() is True

        assert fake_transport.calls[-1][2] == f"sid={VALID_SID}"
        assert logged_in_session.last_action.value == fake_clock.now

    def test_invalidate_expired_session(self, logged_in_session, fake_transport, fake_clock):
        fake_transport.session_valid = False
        fake_clock.advance(30)

        assert logged_in_session.invalidate() is False
        assert logged_in_session.started is False
        assert logged_in_session.last_action.value == fake_clock.now

    def test_logout(self, logged_in_session, fake_transport):
        assert logged_in_session.logout() is True

        assert logged_in_session.session_id == SessionId.invalid()
        assert logged_in_session.last_action.value is None
        assert len(fake_transport.calls_to("POST", "/home/home.lua")) == 1

    def test_logout_resets_even_on_failure(self, logged_in_session, fake_transport):
        with patch.object(fake_transport, "post_form", side_effect=OSError("network down")):
            with pytest.raises(OSError):
                logged_in_session.logout()

        assert logged_in_session.session_id == SessionId.invalid()
        assert logged_in_session.last_action.value is None

    def test_logout_requires_session(self, session_factory):
        with pytest.raises(FritzBoxSessionError, match="not started"):
            session_factory().logout()

    def test_context_manager_closes_transport(self, session_factory, fake_transport):
        with session_factory() as session:
            session.login()

        assert fake_transport.closed is True

    def test_connect_logs_in(self, fake_transport):
        session = connect(password="secret", transport=fake_transport)

        assert session.started is True
        assert len(fake_transport.calls_to("POST", "/login_sid.lua")) == 1

    def test_connect_closes_on_failed_login(self, fake_transport):
        fake_transport.accept_login = False

        with pytest.raises(FritzBoxLoginError):
            connect(password="wrong", transport=fake_transport)

        assert fake_transport.closed is True


@pytest.mark.unit
@pytest.mark.auth
class TestForceSession:
    """Test the idle timeout handling."""

    def test_not_started(self, session_factory):
        with pytest.raises(FritzBoxSessionError, match="Session not started"):
            session_factory().force_session()

    def test_within_idle_timeout_no_network(self, logged_in_session, fake_transport, fake_clock):
        calls_before = len(fake_transport.calls)
        fake_clock.advance(500)

        logged_in_session.force_session()

        assert len(fake_transport.calls) == calls_before

    def test_idle_but_still_valid(self, logged_in_session, fake_transport, fake_clock):
        fake_clock.advance(600)

        logged_in_session.force_session()

        assert len(fake_transport.calls_to("POST", "/login_sid.lua")) == 1
        assert logged_in_session.last_action.elapsed() == 0

    def test_timed_out_reconnects_exactly_once(self, session_factory, fake_transport, fake_clock):
        session = session_factory(auto_reconnect=True)
        session.login()
        fake_transport.session_valid = False
        fake_clock.advance(600)

        with patch.object(session, "login", wraps=session.login) as login_spy:
            session.force_session()

        assert login_spy.call_count == 1
        assert session.started is True
        assert len(fake_transport.calls_to("POST", "/login_sid.lua")) == 2

    def test_timed_out_without_reconnect(self, logged_in_session, fake_transport, fake_clock):
        fake_transport.session_valid = False
        fake_clock.advance(600)

        with pytest.raises(FritzBoxSessionError, match="Session timed out"):
            logged_in_session.force_session()

        assert logged_in_session.session_id == SessionId.invalid()
        assert logged_in_session.last_action.value is None
        assert len(fake_transport.calls_to("POST", "/login_sid.lua")) == 1

    def test_idle_timeout_disabled(self, session_factory, fake_transport, fake_clock):
        session = session_factory(idle_timeout=0)
        session.login()
        calls_before = len(fake_transport.calls)
        fake_clock.advance(10_000)

        session.force_session()

        assert len(fake_transport.calls) == calls_before

    def test_cancelled(self, logged_in_session):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(FritzBoxCancelledError):
            logged_in_session.force_session(token)


@pytest.mark.unit
@pytest.mark.query
class TestSessionQueries:
    """Test query, query_value and send_commands."""

    def test_query_returns_values_in_order(self, logged_in_session, fake_transport):
        fake_transport.values = {"logic:status/nspver": "84.06.50", "sar:status/dsl_train_state": "5"}

        values = logged_in_session.query(["sar:status/dsl_train_state", "logic:status/nspver"])

        assert values == ["5", "84.06.50"]

    def test_query_uses_session_id(self, logged_in_session, fake_transport):
        logged_in_session.query(["x"])

        call = fake_transport.calls_to("GET", "/query.lua")[0]
        assert call[2] == f"sid={VALID_SID}&a0=x"

    def test_query_value(self, logged_in_session, fake_transport):
        fake_transport.values = {"logic:status/nspver": "84.06.50"}

        assert logged_in_session.query_value("logic:status/nspver") == "84.06.50"

    def test_query_empty(self, logged_in_session, fake_transport):
        assert logged_in_session.query([]) == []
        assert fake_transport.calls_to("GET", "/query.lua") == []

    def test_query_requires_session(self, session_factory):
        with pytest.raises(FritzBoxSessionError):
            session_factory().query(["x"])

    def test_query_updates_last_action(self, logged_in_session, fake_clock):
        fake_clock.advance(100)

        logged_in_session.query(["x"])

        assert logged_in_session.last_action.value == fake_clock.now

    def test_send_commands(self, logged_in_session, fake_transport, fake_clock):
        fake_clock.advance(10)

        text = logged_in_session.send_commands({"logic:command/reconnect": "1"})

        call = fake_transport.calls_to("POST", "/cgi-bin/webcm")[0]
        assert call[3] == [("sid", VALID_SID), ("logic:command/reconnect", "1")]
        assert text == f"sid={VALID_SID}&logic%3Acommand%2Freconnect=1"
        assert logged_in_session.last_action.value == fake_clock.now

    def test_instrumentation_records_operations(self, session_factory):
        session = session_factory(enable_instrumentation=True)
        session.login()
        session.query(["a", "b"])

        summary = session.get_performance_metrics()

        assert {"login", "query", "query_partition"} <= set(summary["operation_breakdown"])

    def test_metrics_without_instrumentation(self, logged_in_session):
        assert "error" in logged_in_session.get_performance_metrics()
