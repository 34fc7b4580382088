"""
Gather router module for /events requests
"""

import logging
from typing import List, Optional

import pydantic
from fastapi import Depends, Query

from ._router import router
from ..base import BadRequest
from ..dependency import LocalRequestData
from .. import helpers, versioning
from ...misc import geo
from ...persistence import models
from ... import schemas


logger = logging.getLogger(__name__)

_REQUIRED_EVENT_FIELDS = ("name", "lat", "lon", "started_at")


@router.get("/events", tags=["Events"], response_model=List[schemas.Event])
@versioning.versions(minimal=1)
async def search_for_events(
        id: Optional[pydantic.NonNegativeInt] = None,  # noqa
        name: Optional[pydantic.constr(max_length=255)] = None,
        owner_id: Optional[pydantic.NonNegativeInt] = None,
        attendee_id: Optional[pydantic.NonNegativeInt] = None,
        limit: Optional[pydantic.NonNegativeInt] = None,
        page: Optional[pydantic.NonNegativeInt] = None,
        descending: Optional[bool] = False,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return all events that fulfill *all* constraints given as query parameters

    The `attendee_id` filters for events the given user attends. The number
    of results is capped by the configured maximal page size.
    """

    def extended_filter(event: models.Event) -> bool:
        return attendee_id is None or attendee_id in [a.user_id for a in event.attendances]

    return helpers.search_models(
        models.Event,
        local,
        specialized_item_filter=extended_filter,
        limit=limit,
        page=page,
        descending=descending,
        id=id,
        name=name,
        owner_id=owner_id
    )


@router.post(
    "/events",
    tags=["Events"],
    status_code=201,
    response_model=schemas.Event,
    responses={400: {"model": schemas.APIError}}
)
@versioning.versions(minimal=1)
async def create_new_event(
        event: schemas.EventCreation,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Create a new event owned by the requesting user

    Times without explicit timezone are treated as UTC. A `400` error
    will be returned if the event ends before it has started.
    """

    model = models.Event(**event.model_dump(), owner_id=local.user.id)
    local.session.add(model)
    local.session.commit()
    logger.debug(f"User {local.user.id} created event {model.id}")
    return model.schema


@router.get(
    "/events/nearby",
    tags=["Events"],
    response_model=List[schemas.NearbyEvent],
    responses={400: {"model": schemas.APIError}}
)
@versioning.versions(minimal=1)
async def search_for_nearby_events(
        lat: float = Query(..., ge=-90, le=90, description="Latitude of the search center"),
        lon: float = Query(..., ge=-180, le=180, description="Longitude of the search center"),
        radius: Optional[float] = Query(None, gt=0, description="Search radius in kilometers"),
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return all events within the radius around the given location, closest first

    If no radius is given, the configured default search radius is used. A
    `400` error will be returned if the radius exceeds the configured maximum.
    """

    general = local.config.general
    if radius is None:
        radius = general.default_search_radius
    if radius > general.max_search_radius:
        raise BadRequest(
            f"The search radius must not exceed {general.max_search_radius} km.",
            detail=f"radius={radius}"
        )

    box = geo.bounding_box(lat, lon, radius)
    candidates = local.session.query(models.Event).filter(
        models.Event.lat.between(box.min_lat, box.max_lat),
        models.Event.lon.between(box.min_lon, box.max_lon)
    ).all()

    results = []
    for event in candidates:
        d = geo.distance(lat, lon, event.lat, event.lon)
        if d <= radius:
            results.append(schemas.NearbyEvent(event=event.schema, distance=d))
    return sorted(results, key=lambda r: (r.distance, r.event.id))


@router.get(
    "/events/{event_id}",
    tags=["Events"],
    response_model=schemas.Event,
    responses={404: {"model": schemas.APIError}}
)
@versioning.versions(minimal=1)
async def get_event_by_id(
        event_id: pydantic.NonNegativeInt,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return the event identified by the given ID

    A `404` error will be returned if the event ID is unknown.
    """

    return (await helpers.return_one(event_id, models.Event, local.session)).schema


@router.patch(
    "/events/{event_id}",
    tags=["Events"],
    response_model=schemas.Event,
    responses={k: {"model": schemas.APIError} for k in (400, 403, 404)}
)
@versioning.versions(minimal=1)
async def update_existing_event(
        event_id: pydantic.NonNegativeInt,
        patch: schemas.EventPatch,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Update the given fields of an event owned by the requesting user

    Fields missing in the request body are left unchanged, while the optional
    fields `address` and `ended_at` can be cleared by setting them to `null`.

    A `400` error will be returned if a required field is set to `null`
    or if the updated event would end before it has started. A `403` error
    will be returned if the event belongs to another user.
    """

    model = await helpers.return_owned(event_id, models.Event, local)
    changes = patch.model_dump(exclude_unset=True)
    for field in _REQUIRED_EVENT_FIELDS:
        if field in changes and changes[field] is None:
            raise BadRequest(f"The field {field!r} of an event can't be removed.")

    started_at = changes.get("started_at", model.started_at)
    ended_at = changes.get("ended_at", model.ended_at)
    if ended_at is not None and ended_at < started_at:
        raise BadRequest(
            "An event can't end before it has started.",
            detail=f"started_at={started_at.isoformat()}, ended_at={ended_at.isoformat()}"
        )

    if not changes:
        return model.schema
    for field, value in changes.items():
        setattr(model, field, value)
    local.session.add(model)
    local.session.commit()
    logger.debug(f"User {local.user.id} updated fields {sorted(changes)} of {model!r}")
    return model.schema


@router.delete(
    "/events/{event_id}",
    tags=["Events"],
    status_code=204,
    responses={k: {"model": schemas.APIError} for k in (403, 404)}
)
@versioning.versions(minimal=1)
async def delete_existing_event(
        event_id: pydantic.NonNegativeInt,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Delete an event owned by the requesting user together with all its attendances

    A `403` error will be returned if the event belongs to another user.
    """

    return await helpers.delete_one_of_model(event_id, models.Event, local, logger=logger)


@router.get(
    "/events/{event_id}/attendances",
    tags=["Events"],
    response_model=List[schemas.Attendance],
    responses={404: {"model": schemas.APIError}}
)
@versioning.versions(minimal=1)
async def get_attendances_of_event(
        event_id: pydantic.NonNegativeInt,
        local: LocalRequestData = Depends(LocalRequestData)
):
    """
    Return all attendances of the event identified by the given ID

    A `404` error will be returned if the event ID is unknown.
    """

    event = await helpers.return_one(event_id, models.Event, local.session)
    return sorted([a.schema for a in event.attendances], key=lambda a: a.id)
