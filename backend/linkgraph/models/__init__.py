from __future__ import annotations

from linkgraph.models.connection import Connection  # noqa: F401
