"""Celery app and periodic jobs."""

from celery import Celery
from taskgate.core.config import settings

celery_app = Celery(
    "taskgate",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_soft_time_limit=300,
    task_time_limit=600,
    beat_schedule={
        "refresh-traffic-lights": {
            "task": "refresh_traffic_lights",
            "schedule": settings.TRAFFIC_LIGHT_REFRESH_MINUTES * 60.0,
        },
    },
)


@celery_app.task(name="refresh_traffic_lights")
def refresh_traffic_lights() -> dict:
    """Rewrite the cached traffic light of every unfinished task.

    Read paths always recompute the light, so this only keeps the stored
    column useful for reporting queries that read it directly.
    """
    from taskgate.db.session import SessionLocal
    from taskgate.services.task_service import task_service

    db = SessionLocal()
    try:
        changed = task_service.refresh_cached_traffic_lights(db)
        return {"changed": changed}
    finally:
        db.close()
