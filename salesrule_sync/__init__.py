"""Keep remote promotion tables in sync with commerce sales rule events."""
from __future__ import annotations

import logging

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
