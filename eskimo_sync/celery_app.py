"""Celery configuration for scheduled sync jobs and store hooks."""
from celery import Celery
from celery.schedules import crontab

from eskimo_sync.config import Config


def make_celery(app_name=__name__):
    """Create and configure Celery instance."""
    celery = Celery(
        app_name,
        broker=Config.CELERY_BROKER_URL,
        backend=Config.CELERY_RESULT_BACKEND,
        include=['eskimo_sync.tasks']
    )

    celery.conf.update(
        task_serializer=Config.CELERY_TASK_SERIALIZER,
        result_serializer=Config.CELERY_RESULT_SERIALIZER,
        accept_content=Config.CELERY_ACCEPT_CONTENT,
        timezone=Config.CELERY_TIMEZONE,
        enable_utc=Config.CELERY_ENABLE_UTC,
        task_track_started=True,
        result_expires=3600,  # Results expire after 1 hour
        task_acks_late=True,  # Acknowledge tasks after completion
        worker_prefetch_multiplier=1,  # One sync at a time per worker
        task_routes={
            'eskimo.categories_new': {'queue': 'catalog'},
            'eskimo.products_new': {'queue': 'catalog'},
            'eskimo.skus_modified': {'queue': 'catalog'},
            'eskimo.skus_modified_all': {'queue': 'catalog'},
            'eskimo.skus_modified_products': {'queue': 'catalog'},
            'eskimo.orphan_variable_products': {'queue': 'catalog'},
            'eskimo.customer_created': {'queue': 'cart'},
            'eskimo.customer_updated': {'queue': 'cart'},
            'eskimo.order_status_changed': {'queue': 'cart'},
            'eskimo.order_refunded': {'queue': 'cart'},
        },
        beat_schedule={
            'categories-new-daily': {
                'task': 'eskimo.categories_new',
                'schedule': crontab(hour=2, minute=0),
            },
            'products-new-hourly': {
                'task': 'eskimo.products_new',
                'schedule': crontab(minute=15),
                'kwargs': {'route': 'days', 'created': 1},
            },
            'skus-modified-quarter-hourly': {
                'task': 'eskimo.skus_modified',
                'schedule': crontab(minute='*/15'),
                'kwargs': {'path': 'all', 'route': 'minutes', 'modified': 20},
            },
        }
    )

    return celery


# Create Celery instance
celery_app = make_celery('eskimo_sync')
