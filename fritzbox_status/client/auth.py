"""
Authentication module for Fritz!Box Status Client
=================================================

This module handles the Fritz!Box session-id challenge-response login.

The device hands out a challenge nonce; the client answers with
``<challenge>-<md5>`` where the MD5 is taken over the UTF-16LE bytes of
``<challenge>-<password>``. Characters outside ISO-8859-1 in the password are
replaced by ``.`` before hashing, as the device does.

"""

import hashlib
import logging
from typing import Optional

from fritzbox_status.cancellation import CancellationToken
from fritzbox_status.client.parser import is_logout_redirect, parse_challenge, parse_session_id
from fritzbox_status.exceptions import FritzBoxLoginError
from fritzbox_status.models import SessionId
from fritzbox_status.transport import FritzBoxTransport, encode_parameter

logger = logging.getLogger("fritzbox-status")

URL_LOGIN = "/login_sid.lua"
URL_HOME = "/home/home.lua"

ARG_NAME_RESPONSE = "response"
ARG_NAME_USERNAME = "username"

NON_LATIN1_REPLACEMENT = "."


def mask_password(password: str) -> str:
    """Replace every character with a code point above 255 by ``.``."""
    return "".join(NON_LATIN1_REPLACEMENT if ord(ch) > 255 else ch for ch in password)


def compute_login_response(challenge: str, password: str) -> str:
    """
    Compute the login response for a challenge.

    Args:
        challenge: Challenge string from the device
        password: Login password

    Returns:
        ``<challenge>-<lowercase hex md5>``
    """
    material = f"{challenge}-{mask_password(password)}"
    digest = hashlib.md5(material.encode("utf-16-le")).hexdigest()
    return f"{challenge}-{digest}"


class SessionAuthenticator:
    """Performs the login, invalidate and logout exchanges."""

    def __init__(self, transport: FritzBoxTransport, password: str, username: Optional[str] = None):
        """
        Initialize the authenticator.

        Args:
            transport: Transport used for the exchanges
            password: Login password
            username: Optional login username
        """
        self.transport = transport
        self.password = password
        self.username = username

    def read_session_data(self, session_id: SessionId, cancel: CancellationToken):
        """GET ``login_sid.lua``, passing the current id if it is valid."""
        query = encode_parameter("sid", session_id.value) if session_id.is_valid else None
        return self.transport.get_xml(URL_LOGIN, query, cancel)

    def login(self, session_id: SessionId, cancel: CancellationToken) -> SessionId:
        """
        Obtain a valid session id.

        If the device still accepts ``session_id`` it is returned unchanged,
        otherwise the challenge is answered.

        Raises:
            FritzBoxLoginError: If the device rejects the response
        """
        root = self.read_session_data(session_id, cancel)

        current = parse_session_id(root)
        if current.is_valid:
            logger.debug(f"🔐 Session {current.short} still valid, no challenge needed")
            return current

        challenge = parse_challenge(root)
        form = {ARG_NAME_RESPONSE: compute_login_response(challenge, self.password)}
        if self.username:
            form[ARG_NAME_USERNAME] = self.username

        cancel.raise_if_cancelled()

        root = self.transport.post_form_xml(URL_LOGIN, form, cancel=cancel)
        sid = parse_session_id(root)

        if not sid.is_valid:
            raise FritzBoxLoginError(details={"username": self.username or ""})

        return sid

    def check(self, session_id: SessionId, cancel: CancellationToken) -> SessionId:
        """Ask the device which id it associates with ``session_id``."""
        root = self.read_session_data(session_id, cancel)
        return parse_session_id(root)

    def logout(self, session_id: SessionId, cancel: CancellationToken) -> bool:
        """Post the logout flag; True when the device redirects to the login page."""
        text = self.transport.post_form(URL_HOME, {"logout": "1"}, encode_parameter("sid", session_id.value), cancel)
        return is_logout_redirect(text)
