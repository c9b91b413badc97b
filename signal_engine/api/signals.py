"""Signals API endpoints for managing monitoring rules and their lifecycle."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from signal_engine.db.database import get_session
from signal_engine.db.repositories.contact_point_repo import ContactPointRepository
from signal_engine.db.repositories.signal_repo import SignalRepository
from signal_engine.models.signal import SignalRecord
from signal_engine.schemas.signal import SignalCreateRequest, SignalResponse, SignalUpdateRequest
from signal_engine.signals.errors import ConfigurationError, InvalidStatusTransitionError
from signal_engine.signals.factory import (
    check_transition,
    parse_query,
    parse_schedule,
    validate_signal_config,
)
from signal_engine.signals.models import (
    NotificationPolicyType,
    SignalStatus,
    SignalType,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/signals", tags=["signals"])

# action -> (required current status, target status)
_ACTIONS: dict[str, tuple[SignalStatus, SignalStatus]] = {
    "activate": (SignalStatus.DRAFT, SignalStatus.ACTIVE),
    "pause": (SignalStatus.ACTIVE, SignalStatus.STOPPED),
    "resume": (SignalStatus.STOPPED, SignalStatus.ACTIVE),
    "archive": (SignalStatus.STOPPED, SignalStatus.ARCHIVED),
}


def _validate(
    signal_type: SignalType,
    notification_policy_type: NotificationPolicyType,
    query: dict[str, Any],
    schedule: dict[str, Any] | None,
) -> None:
    """Raise HTTPException 422 if the definition does not validate."""
    try:
        validate_signal_config(
            signal_type,
            parse_query(query),
            parse_schedule(schedule),
            notification_policy_type,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


async def _check_contact_points(db: AsyncSession, contact_point_ids: list[str]) -> None:
    found = await ContactPointRepository(db).get_many(contact_point_ids)
    missing = set(contact_point_ids) - {cp.id for cp in found}
    if missing:
        raise HTTPException(
            status_code=422,
            detail=f"Unknown contact point(s): {', '.join(sorted(missing))}",
        )


async def _get_or_404(db: AsyncSession, signal_id: str) -> SignalRecord:
    record = await SignalRepository(db).get(signal_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Signal {signal_id} not found")
    return record


@router.post("", response_model=SignalResponse, status_code=201)
async def create_signal(
    request: SignalCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> SignalResponse:
    """Create a signal in DRAFT status.

    Raises:
        HTTPException: 422 if the query, schedule or contact points are invalid
    """
    _validate(
        request.signal_type,
        request.notification_policy_type,
        request.query,
        request.schedule,
    )
    await _check_contact_points(db, request.contact_point_ids)

    record = await SignalRepository(db).create(
        name=request.name,
        status=SignalStatus.DRAFT.value,
        signal_type=request.signal_type.value,
        notification_policy_type=request.notification_policy_type.value,
        selection_policy_type=request.selection_policy_type.value,
        query=request.query,
        schedule=request.schedule or {},
        contact_point_ids=request.contact_point_ids,
    )
    logger.info("Created signal %s (%s)", record.id, record.signal_type)
    return SignalResponse.model_validate(record)


@router.get("/{signal_id}", response_model=SignalResponse)
async def get_signal(
    signal_id: str,
    db: AsyncSession = Depends(get_session),
) -> SignalResponse:
    """Get a signal by ID.

    Raises:
        HTTPException: 404 if the signal does not exist
    """
    return SignalResponse.model_validate(await _get_or_404(db, signal_id))


@router.patch("/{signal_id}", response_model=SignalResponse)
async def update_signal(
    signal_id: str,
    request: SignalUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> SignalResponse:
    """Update a signal's definition.

    The merged definition is validated as a whole before anything is saved.

    Raises:
        HTTPException: 404 if the signal does not exist
        HTTPException: 409 if signal_type changes or the signal is archived
        HTTPException: 422 if the merged definition is invalid
    """
    record = await _get_or_404(db, signal_id)

    if record.status == SignalStatus.ARCHIVED.value:
        raise HTTPException(status_code=409, detail="Archived signals cannot be modified")

    if request.signal_type is not None and request.signal_type.value != record.signal_type:
        raise HTTPException(
            status_code=409,
            detail=f"signal_type cannot change from {record.signal_type} to {request.signal_type.value}",
        )

    # An explicit null clears the schedule; on any other field it is ignored
    changes = {
        key: value
        for key, value in request.model_dump(exclude_unset=True, exclude={"signal_type"}).items()
        if value is not None or key == "schedule"
    }
    for key in ("notification_policy_type", "selection_policy_type"):
        if key in changes:
            changes[key] = changes[key].value

    merged_policy = changes.get("notification_policy_type", record.notification_policy_type)
    merged_query = changes.get("query", record.query)
    merged_schedule = changes.get("schedule", record.schedule)

    _validate(
        SignalType(record.signal_type),
        NotificationPolicyType(merged_policy),
        merged_query,
        merged_schedule,
    )
    if "contact_point_ids" in changes:
        await _check_contact_points(db, changes["contact_point_ids"])

    if "schedule" in changes and changes["schedule"] is None:
        changes["schedule"] = {}

    record = await SignalRepository(db).update(record, **changes)
    logger.info("Updated signal %s: %s", record.id, ", ".join(sorted(changes)))
    return SignalResponse.model_validate(record)


async def _transition(db: AsyncSession, signal_id: str, action: str) -> SignalResponse:
    record = await _get_or_404(db, signal_id)
    required, target = _ACTIONS[action]
    current = SignalStatus(record.status)

    try:
        if current != required:
            raise InvalidStatusTransitionError(current.value, target.value)
        check_transition(current, target)
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    if target == SignalStatus.ACTIVE:
        _validate(
            SignalType(record.signal_type),
            NotificationPolicyType(record.notification_policy_type),
            record.query,
            record.schedule,
        )

    record = await SignalRepository(db).update(record, status=target.value)
    logger.info("Signal %s %s: %s -> %s", record.id, action, current.value, target.value)
    return SignalResponse.model_validate(record)


@router.post("/{signal_id}/activate", response_model=SignalResponse)
async def activate_signal(signal_id: str, db: AsyncSession = Depends(get_session)) -> SignalResponse:
    """DRAFT -> ACTIVE."""
    return await _transition(db, signal_id, "activate")


@router.post("/{signal_id}/pause", response_model=SignalResponse)
async def pause_signal(signal_id: str, db: AsyncSession = Depends(get_session)) -> SignalResponse:
    """ACTIVE -> STOPPED. An in-flight dispatch still settles."""
    return await _transition(db, signal_id, "pause")


@router.post("/{signal_id}/resume", response_model=SignalResponse)
async def resume_signal(signal_id: str, db: AsyncSession = Depends(get_session)) -> SignalResponse:
    """STOPPED -> ACTIVE."""
    return await _transition(db, signal_id, "resume")


@router.post("/{signal_id}/archive", response_model=SignalResponse)
async def archive_signal(signal_id: str, db: AsyncSession = Depends(get_session)) -> SignalResponse:
    """STOPPED -> ARCHIVED."""
    return await _transition(db, signal_id, "archive")
