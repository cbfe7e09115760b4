from celery import Celery
from config import ENV, get_env


class CeleryManager:
    def __init__(self, env: ENV | None = None):
        self.env = env or get_env()
        self.celery_app = Celery(
            "reviewflow",
            broker=self.env.CELERY_BROKER_URL,
            backend=self.env.CELERY_RESULT_BACKEND,
            include=["services.bground.tasks"]
        )

        self.celery_app.conf.update(
            task_serializer="json",
            result_serializer="json",
            accept_content=["json"],
            timezone=self.env.CELERY_TIMEZONE,
            worker_prefetch_multiplier=1,
            task_acks_late=True,
            broker_transport_options={"visibility_timeout": 3600},
            beat_schedule={
                "queue-worker-every-minute": {
                    "task": "queue.run_worker",
                    "schedule": 60.0,
                },
            },
        )
