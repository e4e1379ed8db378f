"""FastAPI dependency utilities."""

from fastapi import HTTPException, Request, status

from chat_notifier.application.use_cases.notifications import NotificationEngine


def get_notification_engine(request: Request) -> NotificationEngine:
    """Return the engine attached to the application at startup."""

    engine = getattr(request.app.state, "notification_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification engine is not running",
        )
    return engine
