"""
Fritz!Box session client: authentication, session lifecycle and the query engine.
"""

from .main import DEFAULT_HOST, DEFAULT_IDLE_TIMEOUT, FritzBoxSession, connect

__all__ = ["DEFAULT_HOST", "DEFAULT_IDLE_TIMEOUT", "FritzBoxSession", "connect"]
