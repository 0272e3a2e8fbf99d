from celery import Celery
from app.core.config import settings

celery_app = Celery(
    "ecoride_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=['app.workers.archive_task']
)

# En mode "eager" (tests, dev sans Redis), les tâches s'exécutent dans le process courant
celery_app.conf.task_always_eager = settings.CELERY_ALWAYS_EAGER
celery_app.conf.task_eager_propagates = False
