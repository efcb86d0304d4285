"""
Dual-Native REST API package

Use ``create_app`` to build an application with custom settings or
the ``api`` wrapper object to serve the default application, e.g.
with ``uvicorn dualnative_core.api:api.app``.
"""

from .api import api, create_app
