"""callrelay is a WebRTC signaling relay for two-party call setup."""
from __future__ import annotations

import importlib.metadata as importlib_metadata

__version__ = importlib_metadata.version('callrelay')
