"""
Gather core REST API package

Use ``uvicorn gather_core.api:api.app`` to serve the API with default settings.
"""

from .api import api, create_app
