from typing import Annotated, List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.errors import NotFoundError
from circulation.db.session import get_db
from circulation.schemas.common import ServiceResult
from circulation.schemas.penalty import PenaltyResponse
from circulation.services.penalty import get_penalties_by_member, get_penalty_by_id

router = APIRouter(prefix="/penalties", tags=["Penalties"])


@router.get(
    "/member/{member_id}",
    response_model=ServiceResult[List[PenaltyResponse]],
    summary="Penalties of a member",
    description="All penalties recorded for a member, newest first.",
)
async def list_member_penalties(
    member_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    penalties = await get_penalties_by_member(db, member_id)
    return ServiceResult[List[PenaltyResponse]].ok(
        [PenaltyResponse.model_validate(p) for p in penalties]
    )


@router.get(
    "/{penalty_id}",
    response_model=ServiceResult[PenaltyResponse],
    summary="Get penalty details",
    responses={404: {"description": "Penalty not found"}},
)
async def get_penalty_endpoint(
    penalty_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    penalty = await get_penalty_by_id(db, penalty_id)
    if not penalty:
        raise NotFoundError("Penalty not found")
    return ServiceResult[PenaltyResponse].ok(PenaltyResponse.model_validate(penalty))
