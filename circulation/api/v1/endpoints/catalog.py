from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.api.v1.dependencies import get_actor_id
from circulation.db.session import get_db
from circulation.schemas.catalog import ContainerStatusResponse, LocationResponse, StatusUpdate
from circulation.schemas.common import ServiceResult
from circulation.services.cascade import ContainerKind, set_container_status, set_location_status

router = APIRouter(tags=["Catalog"])


@router.patch(
    "/catalog/{kind}/{container_id}/status",
    response_model=ServiceResult[ContainerStatusResponse],
    summary="Set container status",
    description=(
        "Set the status of a category, subcategory, language, author or publisher and "
        "cascade it to the books it owns. A book linked to several containers takes the "
        "most restrictive status among them (`Banned` > `InActive` > `Active`)."
    ),
    responses={
        404: {"description": "Container not found"},
        409: {"description": "Publisher still has Active books, or concurrent modification"},
    },
)
async def set_container_status_endpoint(
    kind: ContainerKind,
    container_id: str,
    data: StatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[str | None, Depends(get_actor_id)],
):
    container = await set_container_status(db, kind, container_id, data.status, actor_id=actor_id)
    return ServiceResult[ContainerStatusResponse].ok(
        ContainerStatusResponse(id=container.id, kind=kind.value, status=container.status),
        f"{kind.value.capitalize()} status updated",
    )


@router.patch(
    "/locations/{location_id}/status",
    response_model=ServiceResult[LocationResponse],
    summary="Set location status",
    responses={
        404: {"description": "Location not found"},
        409: {"description": "Active books are still shelved there"},
    },
)
async def set_location_status_endpoint(
    location_id: str,
    data: StatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[str | None, Depends(get_actor_id)],
):
    location = await set_location_status(db, location_id, data.status, actor_id=actor_id)
    return ServiceResult[LocationResponse].ok(
        LocationResponse.model_validate(location), "Location status updated"
    )
