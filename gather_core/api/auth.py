"""
Authentication helper library for the core REST API

The API knows two secrets: the shared app secret, which every copy of the
client app carries and which is only needed to create a new user account,
and the per-user auth token, which is handed out exactly once in the
response of the user creation and must be sent along every other request.
Only the SHA-256 digest of the auth token is stored in the database.
"""

import hashlib
import logging
import secrets
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from ..persistence import models


logger = logging.getLogger(__name__)


def generate_auth_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("UTF-8")).hexdigest()


def check_app_secret(given: Optional[str], expected: Optional[str]) -> bool:
    """
    Compare the app secret of a request to the configured one in constant time

    :param given: the secret sent by the client, if any
    :param expected: the configured secret, if any
    :return: whether both secrets are available and equal
    """

    if not given or not expected:
        return False
    return secrets.compare_digest(given.encode("UTF-8"), expected.encode("UTF-8"))


def create_user(session: Session, name: Optional[str] = None, nbytes: int = 32) -> Tuple[models.User, str]:
    """
    Create and persist a new user with a fresh auth token

    :param session: database session which should be used to store the user
    :param name: optional display name of the user
    :param nbytes: number of random bytes of the new auth token
    :return: tuple of the new user model and its auth token in clear text
    """

    token = generate_auth_token(nbytes)
    user = models.User(name=name, auth_token_digest=digest_token(token), active=True)
    session.add(user)
    session.commit()
    logger.info(f"Created new user {user.id} with a fresh auth token")
    return user, token


def find_user_by_token(token: str, session: Session) -> Optional[models.User]:
    """
    Return the active user owning the auth token, if any
    """

    user = session.query(models.User).filter_by(auth_token_digest=digest_token(token)).first()
    if user is None:
        logger.debug("Request with unknown auth token rejected")
        return None
    if not user.active:
        logger.debug(f"Request with auth token of disabled user {user.id} rejected")
        return None
    return user
