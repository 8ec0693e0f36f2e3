"""
Returns Module - Notification Sinks

The services only decide THAT a customer message is due and WHAT kind.
Sinks here turn that intent into something: a Celery task that sends an
email, or an in-memory list for tests and local tooling.
"""

import logging

from .contracts import NotificationKind, NotificationSink

logger = logging.getLogger('returns.notifications')


class CeleryNotificationSink(NotificationSink):
    """Queue the email; the worker composes and sends it (see tasks.py)."""

    def notify(self, kind, return_request, extra=None):
        from .tasks import send_return_notification

        kind = NotificationKind(kind)
        send_return_notification.delay(kind.value, return_request.pk, extra or {})
        logger.info(f'Queued {kind.value} notification for {return_request.return_number}')


class InMemoryNotificationSink(NotificationSink):

    def __init__(self):
        self.sent = []

    def notify(self, kind, return_request, extra=None):
        self.sent.append({
            'kind': NotificationKind(kind),
            'return_id': return_request.pk,
            'return_number': return_request.return_number,
            'extra': extra or {},
        })

    def kinds(self):
        return [entry['kind'] for entry in self.sent]
