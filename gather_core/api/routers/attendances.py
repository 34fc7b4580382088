"""
Gather router module for /attendances requests
"""

import logging
from typing import List, Optional

import pydantic
import sqlalchemy.exc
from fastapi import Depends

from ._router import router
from ..base import Conflict
from ..dependency import LocalRequestData
from .. import helpers, versioning
from ...persistence import models
from ... import schemas


logger = logging.getLogger(__name__)


@router.get("/attendances", tags=["Attendances"], response_model=List[schemas.Attendance])
@versioning.versions(minimal=1)
async def search_for_attendances(
        id: Optional[pydantic.NonNegativeInt] = None,  # noqa
        user_id: Optional[pydantic.NonNegativeInt] = None,
        event_id: Optional[pydantic.NonNegativeInt] = None,
        limit: Optional[pydantic.NonNegativeInt] = None,
        page: Optional[pydantic.NonNegativeInt] = None,
        descending: Optional[bool] = False,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return all attendances that fulfill *all* constraints given as query parameters
    """

    return helpers.search_models(
        models.Attendance,
        local,
        limit=limit,
        page=page,
        descending=descending,
        id=id,
        user_id=user_id,
        event_id=event_id
    )


@router.post(
    "/attendances",
    tags=["Attendances"],
    status_code=201,
    response_model=schemas.Attendance,
    responses={k: {"model": schemas.APIError} for k in (404, 409)}
)
@versioning.versions(minimal=1)
async def attend_event(
        attendance: schemas.AttendanceCreation,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Let the requesting user attend the given event

    A `404` error will be returned if the event ID is unknown. A `409`
    error will be returned if the user already attends the event.
    """

    event = await helpers.return_one(attendance.event_id, models.Event, local.session)
    existing = local.session.query(models.Attendance).filter_by(user_id=local.user.id, event_id=event.id).first()
    if existing is not None:
        raise Conflict("You already attend this event.", detail=repr(existing))

    model = models.Attendance(user_id=local.user.id, event_id=event.id)
    local.session.add(model)
    try:
        local.session.commit()
    except sqlalchemy.exc.IntegrityError as exc:
        local.session.rollback()
        raise Conflict("You already attend this event.", detail=str(exc.orig)) from exc
    logger.debug(f"User {local.user.id} attends event {event.id} now")
    return model.schema


@router.delete(
    "/attendances/{attendance_id}",
    tags=["Attendances"],
    status_code=204,
    responses={k: {"model": schemas.APIError} for k in (403, 404)}
)
@versioning.versions(minimal=1)
async def delete_existing_attendance(
        attendance_id: pydantic.NonNegativeInt,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Withdraw an attendance of the requesting user

    A `403` error will be returned if the attendance belongs to another user.
    """

    return await helpers.delete_one_of_model(attendance_id, models.Attendance, local, logger=logger)
