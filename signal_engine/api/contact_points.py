"""Contact points API endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from signal_engine.db.database import get_session
from signal_engine.db.repositories.contact_point_repo import ContactPointRepository
from signal_engine.notifications.routing import SUPPORTED_CHANNELS
from signal_engine.schemas.contact_point import ContactPointCreateRequest, ContactPointResponse

router = APIRouter(prefix="/api/contact-points", tags=["contact-points"])


@router.post("", response_model=ContactPointResponse, status_code=201)
async def create_contact_point(
    request: ContactPointCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> ContactPointResponse:
    """Register a notification destination.

    Raises:
        HTTPException: 422 if the channel is not supported
    """
    if request.channel not in SUPPORTED_CHANNELS:
        raise HTTPException(
            status_code=422,
            detail=f"Unsupported channel '{request.channel}', expected one of {sorted(SUPPORTED_CHANNELS)}",
        )

    contact_point = await ContactPointRepository(db).create(
        name=request.name,
        channel=request.channel,
        destination=request.destination,
    )
    return ContactPointResponse.model_validate(contact_point)


@router.get("", response_model=list[ContactPointResponse])
async def list_contact_points(db: AsyncSession = Depends(get_session)) -> list[ContactPointResponse]:
    contact_points = await ContactPointRepository(db).list_all()
    return [ContactPointResponse.model_validate(cp) for cp in contact_points]
