"""
Generic helper library for the core REST API
"""

import logging
from typing import Callable, List, Optional, Type

import pydantic
import sqlalchemy
import sqlalchemy.orm
from fastapi.responses import Response

from .base import Forbidden, NotFound
from .dependency import LocalRequestData
from ..persistence import models


_logger = logging.getLogger(__name__)


async def return_one(
        object_id: int,
        model: Type[models.Base],
        session: sqlalchemy.orm.Session
) -> models.Base:
    """
    Return the object of a given model that's identified by its object ID

    :param object_id: internal ID (primary key in the database) of the model
    :param model: class of a SQLAlchemy model
    :param session: database session which should be used to perform the query
    :return: resulting entity as SQLAlchemy model
    :raises NotFound: when the specified object ID returned no result
    """

    obj = session.get(model, object_id)
    if obj is None:
        raise NotFound(f"{model.__name__} with ID {object_id!r}")
    return obj


async def return_owned(
        object_id: int,
        model: Type[models.Base],
        local: LocalRequestData,
        owner_attribute: str = "owner_id"
) -> models.Base:
    """
    Return the object of a given model, but only if it belongs to the requesting user

    :param object_id: internal ID (primary key in the database) of the model
    :param model: class of a SQLAlchemy model
    :param local: contextual local data
    :param owner_attribute: name of the attribute holding the ID of the owning user
    :return: resulting entity as SQLAlchemy model
    :raises NotFound: when the specified object ID returned no result
    :raises Forbidden: when the object belongs to another user
    """

    obj = await return_one(object_id, model, local.session)
    if getattr(obj, owner_attribute) != local.user.id:
        raise Forbidden(
            f"This {model.__name__.lower()} belongs to another user.",
            detail=f"{obj!r}, user={local.user.id}"
        )
    return obj


def search_models(
        model: Type[models.Base],
        local: LocalRequestData,
        specialized_item_filter: Optional[Callable[[models.Base], bool]] = None,
        limit: Optional[pydantic.NonNegativeInt] = None,
        page: Optional[pydantic.NonNegativeInt] = None,
        descending: Optional[bool] = False,
        **kwargs
) -> List[pydantic.BaseModel]:
    """
    Return the schemas of all models that equal all kwargs and pass the special filter function

    :param model: class of a SQLAlchemy model
    :param local: contextual local data
    :param specialized_item_filter: callable function to filter the list of models
        explicitly with some specialized metrics (e.g. custom fields or relations)
    :param limit: limit the number of total results (capped by the configured
        maximal page size, which is also used when no limit is given)
    :param page: select a page of results, based on the page size of `limit`
    :param descending: reverse the order of results received from the database
    :param kwargs: dict of extra attribute checks on the model (empty values in the
        dict are ignored and won't be treated as check for ``None`` in the model)
    :return: list of schemas of all models that equal all kwargs and passed the filter function
    """

    max_page_size = local.config.general.max_page_size
    limit = min(limit, max_page_size) if limit else max_page_size

    query = local.session.query(model)
    for k in kwargs:
        if kwargs[k] is not None:
            query = query.filter_by(**{k: kwargs[k]})
    if descending:
        query = query.order_by(sqlalchemy.desc(model.id))
    else:
        query = query.order_by(sqlalchemy.asc(model.id))
    results = [obj.schema for obj in query.all() if specialized_item_filter is None or specialized_item_filter(obj)]
    if page:
        return results[limit*page:limit*(page+1)]
    return results[:limit]


async def delete_one_of_model(
        instance_id: pydantic.NonNegativeInt,
        model: Type[models.Base],
        local: LocalRequestData,
        logger: Optional[logging.Logger] = None
) -> Response:
    """
    Delete the identified instance of a model from the database, if owned by the requesting user

    :param instance_id: unique identifier of the instance to be deleted
    :param model: class of the SQLAlchemy model
    :param local: contextual local data
    :param logger: optional logger that should be used for DEBUG messages
    :raises NotFound: when the specified ID can't be found for the given model
    :raises Forbidden: when the object belongs to another user
    """

    owner_attribute = "owner_id" if hasattr(model, "owner_id") else "user_id"
    obj = await return_owned(instance_id, model, local, owner_attribute)
    (logger or _logger).debug(f"Deleting model {obj!r}...")
    local.session.delete(obj)
    local.session.commit()
    return Response(status_code=204)
