"""
Returns Portal Package Initialization
Loads Celery when Django starts so notification tasks are registered.
"""

from .celery import app as celery_app

__all__ = ('celery_app',)
