"""
Fritz!Box Status CLI
====================

The ``fritzbox-status`` command. Option handling lives in args.py, console
logging in logging_setup.py, human and JSON rendering in formatters.py, and
main.py ties them to a FritzBoxSession.

License: MIT
"""

from .main import main

__all__ = ["main"]
