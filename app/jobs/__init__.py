"""
Background jobs — Celery workers for feedback parsing, scope analysis,
email delivery and workflow reminders.

    celery_app.py   Celery instance, queues, beat schedule, Flask binding
    queues.py       enqueue_* helpers called from services (no-op when
                    JOBS_ENABLED is false)
    handlers.py     job bodies; plain functions, testable without a broker
    tasks.py        @shared_task wrappers with retry/backoff
    worker.py       worker / beat entry point
"""
