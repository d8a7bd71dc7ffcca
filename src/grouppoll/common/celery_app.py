from celery import Celery
from kombu.utils.url import safequote
from grouppoll.common import settings

NOTIFICATIONS_ROOT = "grouppoll.workers.tasks.notifications"

SEND_POLL_INVITE = f"{NOTIFICATIONS_ROOT}.send_poll_invite"
NOTIFY_POLL_RESPONSE = f"{NOTIFICATIONS_ROOT}.notify_poll_response"


def get_broker_url() -> str:
    protocol = settings.CELERY_BROKER_TYPE
    user = safequote(settings.CELERY_BROKER_USER)
    password = safequote(settings.CELERY_BROKER_PASSWORD or "")
    host = settings.CELERY_BROKER_HOST

    if password:
        url = f"{protocol}://{user}:{password}@{host}"
    else:
        url = f"{protocol}://{host}"

    if protocol == "redis":
        url += f"/{settings.REDIS_DB}"
    return url


app = Celery(
    "grouppoll",
    broker=get_broker_url(),
    backend=settings.CELERY_RESULT_BACKEND,
)

app.autodiscover_tasks(["grouppoll.workers.tasks"])


app.conf.update(
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    # Notifications are best-effort: no automatic retries
    task_time_limit=120,
    task_soft_time_limit=90,
    task_routes={
        f"{NOTIFICATIONS_ROOT}.*": {
            "queue": f"{settings.CELERY_QUEUE_PREFIX}-notifications"
        },
    },
)
