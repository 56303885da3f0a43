#!/usr/bin/env python3
"""
Celery worker for notification delivery
Run with: celery -A celery_worker.celery worker -Q notifications --loglevel=info
Or: python celery_worker.py
"""
from clinicdesk import create_app
from clinicdesk.extensions import celery

# The app configures the broker and wraps tasks in its context
app = create_app()

from tasks import notification_tasks  # noqa: E402,F401

if __name__ == '__main__':
    celery.worker_main([
        'worker',
        '--loglevel=info',
        '--queues=notifications',
        '--concurrency=2',
    ])
