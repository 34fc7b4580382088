"""
Gather API library to serve multiple versions of the API endpoints side by side

Every version of the API lives in its own FastAPI sub-application mounted
below a version prefix (``/v1``, ``/v2``, ...). Clients integrated against
an older version keep working while newer versions change response shapes.
"""

import logging
from typing import Callable, Dict, NamedTuple, Optional, Tuple

import fastapi
import fastapi.routing

from .. import schemas


VERSION_ANNOTATION_NAME = "_api_versions"


class VersionAnnotation(NamedTuple):
    """
    Versions of the API which should include a certain path operation
    """

    explicit: Tuple[int, ...] = ()
    minimal: Optional[int] = None
    maximal: Optional[int] = None

    def includes(self, version: int, default_minimal: int, default_maximal: int) -> bool:
        minimal = default_minimal if self.minimal is None else self.minimal
        maximal = default_maximal if self.maximal is None else self.maximal
        if not minimal <= version <= maximal:
            return False
        return not self.explicit or version in self.explicit


def versions(
        *annotations: int,
        minimal: Optional[int] = None,
        maximal: Optional[int] = None
) -> Callable[[Callable], Callable]:
    """
    Decorate a path operation function with the version(s) of the API that should support it

    :param annotations: any number of explicit API versions that should include the decorated
        path operation (which can't be below or above the minimal and maximal values respectively)
    :param minimal: minimal version of APIs that should include the decorated path operation
    :param maximal: maximal version of APIs that should include the decorated path operation
    :return: decorator to use on a path operation function
    :raises TypeError: when any of the given versions is not an integer
    :raises ValueError: when explicit versions lie outside of the minimal and maximal versions
    """

    for value in (*annotations, minimal, maximal):
        if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
            raise TypeError(f"Expected int, got {type(value)!r}")
    if minimal is not None and any(v < minimal for v in annotations):
        raise ValueError("Can't accept annotations smaller than the minimal version")
    if maximal is not None and any(v > maximal for v in annotations):
        raise ValueError("Can't accept annotations bigger than the maximal version")
    if minimal is not None and maximal is not None and minimal > maximal:
        raise ValueError(f"Minimal version {minimal} is bigger than maximal version {maximal}")

    def decorator(func: Callable) -> Callable:
        assert not hasattr(func, VERSION_ANNOTATION_NAME), "'versions' can't be used twice"
        setattr(func, VERSION_ANNOTATION_NAME, VersionAnnotation(tuple(annotations), minimal, maximal))
        return func

    return decorator


class VersionedFastAPI(fastapi.FastAPI):
    """
    Specialized FastAPI adding support for multiple versioned sub-APIs

    Use this class as in-place replacement for the FastAPI class. The
    ``apis`` parameter defines which API versions will be served, only
    the versions mentioned in this dictionary will be mounted later.

    Add routers using ``add_router`` instead of ``include_router``, since
    the latter would ignore the version annotations. After adding all
    routers, call ``finish`` once to mount the sub-APIs.

    .. code-block::

        app = VersionedFastAPI(
            title="API",
            apis={
                1: FastAPI(title="API v1"),
                2: FastAPI(title="API v2")
            }
        )
        app.add_router(...)
        app.finish()
    """

    def __init__(
            self,
            apis: Dict[int, fastapi.FastAPI],
            *args,
            version_format: str = "/v{}",
            logger: Optional[logging.Logger] = None,
            absolute_minimal_version: int = 1,
            absolute_maximal_version: Optional[int] = None,
            **kwargs
    ):
        assert version_format.count("{}") == 1, "Version format string must contain '{}' once"
        assert apis, "At least one API version is required"
        super().__init__(*args, **kwargs)
        self._apis = apis
        self._version_format = version_format
        self._logger = logger or logging.getLogger(__name__)
        self._abs_min = absolute_minimal_version
        self._abs_max = absolute_maximal_version or max(apis.keys())
        self._finished = False

    @property
    def apis(self) -> Dict[int, fastapi.FastAPI]:
        return dict(self._apis)

    def get_prefix(self, version: int) -> str:
        return self._version_format.format(version)

    def finish(self, versions_endpoint: bool = True):
        """
        Complete the registration of new routers and mount the versioned sub-APIs once

        :param versions_endpoint: switch to enable the special ``/versions`` endpoint
        """

        if self._finished:
            return

        for api_version, sub_api in self._apis.items():
            prefix = self.get_prefix(api_version)
            api_tag = f"Version {api_version}"
            self.mount(prefix, sub_api)

            # Listing the documentation of the sub-API only; the mount handles the requests
            @self.get(f"{prefix}/openapi.json", name="Get Specifications", tags=[api_tag])
            @self.get(f"{prefix}/docs", name="Use Swagger User Interface", tags=[api_tag])
            @self.get(f"{prefix}/redoc", name="Use ReDoc User Interface", tags=[api_tag])
            async def noop() -> None:
                pass

        if versions_endpoint:
            @self.get("/versions", response_model=schemas.Versions, tags=["Miscellaneous"])
            async def get_version_info():
                return schemas.Versions(
                    latest=max(self._apis.keys()),
                    versions=[
                        {"version": v, "prefix": self.get_prefix(v)}
                        for v in sorted(self._apis.keys())
                    ]
                )

        self._finished = True

    def add_router(self, router: fastapi.APIRouter, **kwargs):
        """
        Add the routes of the router to all sub-APIs matching their version annotations

        :param router: APIRouter carrying all routes that should be filtered and added
        :param kwargs: optional keyword arguments for the ``include_router`` method of the
            ``FastAPI`` instances which were supplied via the constructor's ``apis`` argument
        :raises RuntimeError: when the API has already been finished
        :raises TypeError: when a route carries an invalid version annotation
        """

        if self._finished:
            raise RuntimeError("Can't add new routers after the API has been finally built")

        kwargs.pop("prefix", None)
        for api_version, sub_api in self._apis.items():
            filtered_routes = []
            for route in router.routes:
                if not isinstance(route, fastapi.routing.APIRoute):
                    self._logger.error(f"Route {route!r} is no 'APIRoute' instance! Skipping.")
                    continue

                annotation = getattr(route.endpoint, VERSION_ANNOTATION_NAME, None)
                if annotation is None:
                    self._logger.warning(
                        f"Route {route.path!r} has no annotated version! It will "
                        f"therefore only be supported on API version {self._abs_max} by default."
                    )
                    annotation = VersionAnnotation(explicit=(self._abs_max,))
                elif not isinstance(annotation, VersionAnnotation):
                    raise TypeError(f"Version annotation {annotation!r} of {route.path!r} is invalid!")

                if annotation.includes(api_version, self._abs_min, self._abs_max):
                    filtered_routes.append(route)

            self._logger.debug(f"Adding {len(filtered_routes)} routes to API version {api_version}")
            sub_api.include_router(
                fastapi.APIRouter(
                    prefix="",
                    default_response_class=router.default_response_class,
                    routes=filtered_routes
                ),
                prefix="",
                **kwargs
            )
