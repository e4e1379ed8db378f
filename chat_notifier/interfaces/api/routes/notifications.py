"""Operator endpoints for the notification delivery engine."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from chat_notifier.application.use_cases.notifications import NotificationEngine
from chat_notifier.domain.entities import DigestPeriod
from chat_notifier.domain.exceptions import NotFoundError, ValidationError
from chat_notifier.interfaces.api.dependencies import get_notification_engine
from chat_notifier.interfaces.api.schemas import (
    BulkNotificationCreate,
    BulkNotificationResponse,
    NotificationEventCreate,
    NotificationInteractionCreate,
    NotificationInteractionRead,
    NotificationRead,
    NotificationSubmitResponse,
    QueueRequestResponse,
    QueueStatsRead,
    SweepResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post(
    "/events",
    response_model=NotificationSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_event(
    payload: NotificationEventCreate,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> NotificationSubmitResponse:
    """Route one task event to its recipient."""

    try:
        notification_id = await engine.submit(payload.to_event())
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return NotificationSubmitResponse(
        notification_id=notification_id, queued=notification_id is not None
    )


@router.post(
    "/events/bulk",
    response_model=BulkNotificationResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_bulk_event(
    payload: BulkNotificationCreate,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> BulkNotificationResponse:
    summary = await engine.submit_to_many(payload.user_ids, payload.event.to_event())
    return BulkNotificationResponse(**summary)


@router.get("/queues/stats", response_model=dict[str, QueueStatsRead])
def get_queue_stats(
    engine: NotificationEngine = Depends(get_notification_engine),
) -> dict[str, QueueStatsRead]:
    return {
        name: QueueStatsRead(**stats) for name, stats in engine.get_queue_stats().items()
    }


@router.post("/sweeps/batches", response_model=SweepResponse)
async def run_batch_sweep(
    engine: NotificationEngine = Depends(get_notification_engine),
) -> SweepResponse:
    return SweepResponse(queued=await engine.run_scheduled_batch_sweep())


@router.post("/sweeps/digests/{period}", response_model=SweepResponse)
async def run_digest_sweep(
    period: DigestPeriod,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> SweepResponse:
    return SweepResponse(queued=await engine.run_scheduled_digest(period))


@router.post("/sweeps/retries", response_model=SweepResponse)
async def run_retry_sweep(
    engine: NotificationEngine = Depends(get_notification_engine),
) -> SweepResponse:
    return SweepResponse(queued=await engine.run_retry_sweep())


@router.post("/surfaces/{recipient_id}/refresh", response_model=QueueRequestResponse)
async def request_surface_refresh(
    recipient_id: str,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> QueueRequestResponse:
    return QueueRequestResponse(queued=engine.request_surface_refresh(recipient_id))


@router.post("/batches/{recipient_id}/flush", response_model=QueueRequestResponse)
async def flush_recipient_batch(
    recipient_id: str,
    force: bool = Query(False, description="Flush even inside quiet hours"),
    engine: NotificationEngine = Depends(get_notification_engine),
) -> QueueRequestResponse:
    return QueueRequestResponse(
        queued=engine.flush_recipient_batch(recipient_id, force=force)
    )


@router.get("/{notification_id}", response_model=NotificationRead)
async def get_notification(
    notification_id: str,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> NotificationRead:
    try:
        record = await engine.get_notification(notification_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return NotificationRead.from_record(record)


@router.post(
    "/{notification_id}/interactions",
    response_model=NotificationInteractionRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_interaction(
    notification_id: str,
    payload: NotificationInteractionCreate,
    engine: NotificationEngine = Depends(get_notification_engine),
) -> NotificationInteractionRead:
    try:
        interaction = await engine.record_interaction(
            notification_id,
            payload.action_id,
            actor=payload.actor,
            outcome=payload.outcome,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return NotificationInteractionRead(
        action_id=interaction.action_id,
        actor=interaction.actor,
        timestamp=interaction.timestamp,
        outcome=interaction.outcome,
    )
