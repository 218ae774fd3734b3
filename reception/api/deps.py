from functools import lru_cache
from typing import Annotated, Optional
import logging

from fastapi import Depends, Header, HTTPException, status

from reception.core.exceptions import UnknownActor
from reception.core.identity import StaticDirectory
from reception.schemas.reception import Actor
from reception.services.reception_service import ReceptionService
from reception.services.reception_store import SqlReceptionStore


logger = logging.getLogger(__name__)


@lru_cache
def get_identity_provider() -> StaticDirectory:
    """Plant directory used to resolve actors."""
    return StaticDirectory()


@lru_cache
def get_reception_service() -> ReceptionService:
    """Process-wide registry of open reception workflows."""
    return ReceptionService(SqlReceptionStore(), get_identity_provider())


async def get_current_actor(
    x_actor_id: Annotated[Optional[str], Header()] = None,
    identity: StaticDirectory = Depends(get_identity_provider),
) -> Actor:
    """
    Dependency to get the acting user.

    The actor id travels in the X-Actor-Id header and is resolved through
    the identity provider.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not identify the acting user",
    )
    if not x_actor_id:
        logger.warning("Request without X-Actor-Id header")
        raise credentials_exception

    try:
        return identity.get_actor(x_actor_id)
    except UnknownActor:
        logger.warning(f"Unknown actor id: {x_actor_id}")
        raise credentials_exception


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Service = Annotated[ReceptionService, Depends(get_reception_service)]
