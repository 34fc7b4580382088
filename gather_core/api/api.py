"""
Combined Gather core REST API definitions

This API may provide multiple versions of certain endpoints.
Take a look into the different API definitions to see which
functionality they provide. Older versions are kept alive
as long as released mobile apps still integrate against them.
"""

import contextlib
import logging.config
from typing import Any, Callable, Dict, Optional, Type, Union

import fastapi
import fastapi.responses
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import base, versioning
from .routers import router
from .. import schemas, __version__
from ..persistence import database
from ..settings import Settings


DEFAULT_EXCEPTION_HANDLERS = {
    StarletteHTTPException: base.APIException.handle,
    RequestValidationError: base.handle_request_validation_error,
    Exception: base.handle_generic_exception
}


API_V1_DOC = """Gather core REST API definition version 1

This API uses two custom request headers for authentication:

1. `tb-app-secret` carries the secret shared by all copies of the mobile app.
   It's only required to create a new user account (see `POST /users`). A
   request with a missing or wrong app secret receives exactly the same `404`
   (Not Found) response as a request to a route that doesn't exist.
2. `tb-auth-token` carries the personal token of a user. It's returned
   exactly once in the response of `POST /users` and can't be retrieved again
   later, so the client app must store it safely. Every other endpoint
   (except `GET /health`) requires this header.

The API tries to always return JSON-encoded data to any kind of request,
if return data is necessary for that response, which is not the case for
redirects or deletions, for example. All error responses use the schema of
the `APIError`. This allows user agents to make certain assumptions about the
returned response, if the returned status code equals the expected status
code for that operation, usually `200` (OK) or `201` (Created).

The following `4xx` error responses are used in the API code:

1. The `400` (Bad Request) error response is used for invalid requests, e.g.
   malformed bodies, out-of-range coordinates or events ending before they
   started. The `message` field can usually be shown to end users.
2. The `401` (Unauthorized) error response is encountered whenever the
   `tb-auth-token` header is missing, unknown or belongs to a disabled user.
3. The `403` (Forbidden) error response is returned when a user tries to
   modify or delete an event or attendance that belongs to another user.
4. The `404` (Not Found) error response is returned whenever a model ID
   can't be found, a route doesn't exist or the app secret was rejected.
5. The `409` (Conflict) error response is returned when a request violates
   a data constraint, e.g. attending the same event twice.

Take a look at the individual methods and endpoints for more information.
"""


def _make_app(
        title: str,
        version: str,
        description: str,
        exception_handlers: Optional[Dict[Type[Exception], Callable]] = None,
        root_redirect: bool = True,
        responses: Optional[Dict[Union[int, str], Dict[str, Any]]] = None,
        api_class: Optional[Type[fastapi.FastAPI]] = None,
        **kwargs
) -> fastapi.FastAPI:
    if api_class is None:
        api_class = fastapi.FastAPI
    app = api_class(
        title=title,
        version=version,
        description=description,
        docs_url="/docs",
        redoc_url="/redoc",
        responses=responses or {400: {"model": schemas.APIError}},
        **kwargs
    )

    handlers = exception_handlers or DEFAULT_EXCEPTION_HANDLERS
    for exc in handlers:
        app.add_exception_handler(exc, handlers[exc])

    if root_redirect:
        @app.get("/", include_in_schema=False)
        async def redirect_root():
            return fastapi.responses.RedirectResponse("./docs")

    return app


def create_app(
        settings: Optional[Settings] = None,
        configure_logging: bool = True,
        configure_database: bool = True
) -> fastapi.FastAPI:
    """
    Create a new ``FastAPI`` instance using the specified settings and switches

    This function is conveniently used to allow overwriting the settings
    before launching the application as well as to allow multiple ``FastAPI``
    instances in one program, which in turn makes unit testing much easier.

    :param settings: optional Settings instance (would be created if not present)
    :param configure_logging: switch whether to configure logging
    :param configure_database: switch whether to configure the database
    :return: new ``FastAPI`` instance
    """

    @contextlib.asynccontextmanager
    async def lifespan(_: fastapi.FastAPI):
        logger.info("Starting API...")
        if settings.server.app_secret is None:
            logger.warning("No app secret configured! Creating new users will be impossible.")
        yield
        logger.info("Shutting down...")

    if settings is None:
        settings = Settings()

    if configure_logging:
        logging.config.dictConfig(settings.logging.model_dump())
    logger = logging.getLogger(__name__)
    logger.debug("Starting application...")

    if configure_database:
        database.init(settings.database.connection, settings.database.debug_sql)

    app = _make_app(
        title="Gather core REST API",
        version=__version__,
        description=__doc__,
        apis={
            1: _make_app(
                title="Gather core REST API v1",
                version=__version__,
                description=API_V1_DOC,
                api_class=base.APIWithoutValidationError,
                responses={400: {"model": schemas.APIError}, 401: {"model": schemas.APIError}}
            )
        },
        logger=logger,
        responses={400: {"model": schemas.APIError}},
        lifespan=lifespan,
        api_class=versioning.VersionedFastAPI
    )

    assert isinstance(app, versioning.VersionedFastAPI), "'VersionedFastAPI' instance required"
    app.state.settings = settings
    for sub_api in app.apis.values():
        sub_api.state.settings = settings
    app.add_router(router)

    app.finish()
    return app


class APIWrapper:
    """
    Wrapper class around the FastAPI main object, accessible via the ``app`` property

    There should be only one global instance of this object, which should only
    export its functionality to hold the ``app`` property. This wrapper can be
    used to allow easy command-line usage via ``uvicorn`` calls. Example:

    .. code-block::

        uvicorn gather_core.api:api.app
    """

    def __init__(self):
        self._app: Optional[fastapi.FastAPI] = None

    def get_app(self) -> fastapi.FastAPI:
        return self.app

    def set_app(self, application: fastapi.FastAPI):
        if not isinstance(application, fastapi.FastAPI):
            raise TypeError
        self._app = application

    @property
    def app(self) -> fastapi.FastAPI:
        """
        Return the ``app`` instance (or create it with default settings if it doesn't exist)
        """

        if self._app is not None:
            return self._app
        self._app = create_app()
        return self._app


api = APIWrapper()
