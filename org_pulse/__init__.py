"""Org Pulse: recent GitHub activity per company organization."""

import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
