from __future__ import annotations

# Import fixtures from testing/ so they are known by pytest
from testing.signaling_server import signaling_server
from testing.ssl import ssl_context
