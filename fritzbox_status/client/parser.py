"""
Response Parser for Fritz!Box Status Client
===========================================

This module extracts values from the two response formats the Fritz!Box
uses: the ``login_sid.lua`` XML document and the ``query.lua`` body, which
looks like JSON but is not reliably valid JSON and is therefore scanned for
``"a<N>": "<value>"`` fragments.

"""

import logging
import re
from collections.abc import Iterator
from xml.etree.ElementTree import Element

from fritzbox_status.exceptions import FritzBoxProtocolError
from fritzbox_status.models import SessionId

logger = logging.getLogger("fritzbox-status")

FIELD_NAME_SID = "SID"
FIELD_NAME_CHALLENGE = "Challenge"

# Items look like:  "a0": "74.05.50",
QUERY_RESPONSE_ITEM_PATTERN = re.compile(r'"a(?P<id>\d+)": "(?P<value>.*?)",?')

MAX_QUERY_INDEX = 2**64 - 1


def _child_text(root: Element, name: str) -> str:
    node = root.find(name)
    if node is None:
        raise FritzBoxProtocolError(
            f"Login response has no <{name}> element",
            details={"element": name, "root": root.tag},
        )
    return node.text or ""


def parse_session_id(root: Element) -> SessionId:
    """Read the ``<SID>`` element of a login document."""
    return SessionId(_child_text(root, FIELD_NAME_SID).strip())


def parse_challenge(root: Element) -> str:
    """Read the ``<Challenge>`` element of a login document."""
    challenge = _child_text(root, FIELD_NAME_CHALLENGE).strip()
    if not challenge:
        raise FritzBoxProtocolError("Login response has an empty challenge")
    return challenge


def parse_query_items(text: str) -> Iterator[tuple[int, str]]:
    """
    Yield ``(index, value)`` for every item fragment in a query response.

    Raises:
        FritzBoxProtocolError: If an index cannot be read as an unsigned number
    """
    for match in QUERY_RESPONSE_ITEM_PATTERN.finditer(text):
        raw_index = match.group("id")
        # \d and int() both accept non-ASCII digits
        if not raw_index.isascii():
            raise FritzBoxProtocolError("Invalid argument number", details={"index": raw_index})
        try:
            index = int(raw_index)
        except ValueError as e:
            raise FritzBoxProtocolError("Invalid argument number", details={"index": raw_index}) from e

        if index > MAX_QUERY_INDEX:
            raise FritzBoxProtocolError("Invalid argument number", details={"index": raw_index})

        yield index, match.group("value")


def is_logout_redirect(text: str) -> bool:
    """The home page answers a successful logout with a link back to the login page."""
    return "/login.lua" in text
