"""
Gather API dependency library
"""

import logging
from typing import Generator, Optional

import sqlalchemy.exc
from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session

from . import auth, base
from ..persistence import database, models
from ..settings import Settings


APP_SECRET_HEADER = "tb-app-secret"
AUTH_TOKEN_HEADER = "tb-auth-token"


def get_session() -> Generator[Session, None, bool]:
    """
    Return a generator to handle database sessions gracefully
    """

    logger = logging.getLogger(__name__)
    session = database.get_new_session()

    try:
        yield session
        session.flush()
    except sqlalchemy.exc.DBAPIError as exc:
        details = (exc.statement or "").replace("\n", "")
        logger.exception(f"{type(exc).__name__}: {exc.orig!s} @ {details!r}")
        session.rollback()
        raise
    except sqlalchemy.exc.SQLAlchemyError as exc:
        logger.exception(f"{type(exc).__name__}: {str(exc)}")
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    return True


class MinimalRequestData:
    """
    Collection of minimal dependencies used by path operations that need no authentication
    """

    def __init__(
            self,
            request: Request,
            response: Response,
            session: Session = Depends(get_session)
    ):
        self.request = request
        self.response = response
        self.headers = request.headers
        self.session = session

        self._config: Optional[Settings] = None

    @property
    def config(self) -> Settings:
        """
        Return the settings the running application has been created with (or load them)
        """

        if self._config is None:
            self._config = getattr(self.request.app.state, "settings", None) or Settings()
        return self._config


class AppSecretRequestData(MinimalRequestData):
    """
    Collection of dependencies for path operations gated by the shared app secret

    A missing or wrong ``tb-app-secret`` header is answered exactly like
    a request to a route that doesn't exist, i.e. with ``404``.
    """

    def __init__(
            self,
            request: Request,
            response: Response,
            session: Session = Depends(get_session),
            tb_app_secret: Optional[str] = Header(None, description="Shared secret of the client app")
    ):
        super().__init__(request, response, session)
        expected = self.config.server.app_secret
        if expected is None:
            logging.getLogger(__name__).debug("No app secret has been configured, rejecting the request")
        if not auth.check_app_secret(tb_app_secret, expected):
            raise base.HiddenRoute(f"invalid or missing {APP_SECRET_HEADER!r} header")


class LocalRequestData(MinimalRequestData):
    """
    Collection of core dependencies used by all authenticated path operations

    This class stores references to various important objects that will
    almost certainly be used by request handlers (path operations), most
    importantly the ``user`` owning the auth token sent along the request.
    Note that any dependency added here will be added to the OpenAPI
    definition, if it refers to a Query, Header, Path or Cookie.
    """

    def __init__(
            self,
            request: Request,
            response: Response,
            session: Session = Depends(get_session),
            tb_auth_token: Optional[str] = Header(None, description="Auth token issued on user creation")
    ):
        super().__init__(request, response, session)
        if not tb_auth_token:
            raise base.Unauthorized(f"The {AUTH_TOKEN_HEADER!r} header is required.")

        user = auth.find_user_by_token(tb_auth_token, session)
        if user is None:
            raise base.Unauthorized("The auth token is invalid or has been revoked.")
        self.user: models.User = user
