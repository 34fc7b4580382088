"""
Gather router module for /users requests
"""

import logging

import pydantic
import sqlalchemy.exc
from fastapi import Depends

from ._router import router
from ..base import BadRequest
from ..dependency import AppSecretRequestData, LocalRequestData
from .. import auth, helpers, versioning
from ...persistence import models
from ... import schemas


logger = logging.getLogger(__name__)


@router.post(
    "/users",
    tags=["Users"],
    status_code=201,
    response_model=schemas.NewUser,
    responses={k: {"model": schemas.APIError} for k in (400, 404)},
    openapi_extra={
        "requestBody": {
            "required": False,
            "content": {"application/json": {"schema": schemas.UserCreation.model_json_schema()}}
        }
    }
)
@versioning.versions(minimal=1)
async def create_new_user(local: AppSecretRequestData = Depends(AppSecretRequestData)):
    """
    Create a new user and return it together with its auth token

    This is the only endpoint which requires the `tb-app-secret` header.
    If the header is missing or its value doesn't match, the response is
    the same `404` (Not Found) as for a route that doesn't exist. The
    request body is only read after the app secret has been accepted.

    The returned `auth_token` has to be included in the `tb-auth-token`
    header of all subsequent requests of the new user. It is only
    returned *once* here and can't be retrieved again later.

    A `400` error will be returned if the body is invalid
    or if the optional name is already taken.
    """

    try:
        user = schemas.UserCreation.model_validate_json(await local.request.body() or b"{}")
    except pydantic.ValidationError as exc:
        raise BadRequest("Failed to process the request.", detail=str(exc)) from exc

    name = user.name
    if name is not None and local.session.query(models.User).filter_by(name=name).first():
        raise BadRequest(f"The user name {name!r} is already taken.")

    try:
        new_user, token = auth.create_user(local.session, name, local.config.server.auth_token_bytes)
    except sqlalchemy.exc.IntegrityError as exc:
        local.session.rollback()
        raise BadRequest(f"The user name {name!r} is already taken.", detail=str(exc.orig)) from exc
    return schemas.NewUser(**new_user.schema.model_dump(), auth_token=token)


@router.get("/users/me", tags=["Users"], response_model=schemas.User)
@versioning.versions(minimal=1)
async def get_own_user(local: LocalRequestData = Depends(LocalRequestData)):
    """
    Return the user owning the auth token of the request
    """

    return local.user.schema


@router.get(
    "/users/{user_id}",
    tags=["Users"],
    response_model=schemas.User,
    responses={404: {"model": schemas.APIError}}
)
@versioning.versions(minimal=1)
async def get_user_by_id(
        user_id: pydantic.NonNegativeInt,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return the user identified by the given ID

    A `404` error will be returned if the user ID is unknown.
    """

    return (await helpers.return_one(user_id, models.User, local.session)).schema
