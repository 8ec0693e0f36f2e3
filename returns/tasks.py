"""
Returns Module - Celery Tasks

Customer emails for return lifecycle steps. The API has already answered
by the time these run; a slow or failing mail server only delays the email.
"""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .contracts import NotificationKind
from .models import ReturnRequest

logger = logging.getLogger('returns.tasks')


SUBJECTS = {
    NotificationKind.CREATED: 'Return Request Received - {number}',
    NotificationKind.APPROVED: 'Return Approved - {number}',
    NotificationKind.REJECTED: 'Return Rejected - {number}',
    NotificationKind.RECEIVED: 'Return Received - {number}',
    NotificationKind.REFUND_PROCESSED: 'Refund Processed - {number}',
}

BODIES = {
    NotificationKind.CREATED: (
        'We have received your return request {number}. '
        'We will review it and get back to you shortly.'
    ),
    NotificationKind.APPROVED: (
        'Your return {number} has been approved. '
        'Please send the items back and keep the tracking number.'
    ),
    NotificationKind.REJECTED: (
        'Unfortunately your return {number} could not be accepted.\n'
        'Reason: {reason}'
    ),
    NotificationKind.RECEIVED: (
        'We have received the items for return {number} and are processing your refund.'
    ),
    NotificationKind.REFUND_PROCESSED: (
        'Your refund of {amount} for return {number} has been processed ({method}).'
    ),
}


def compose_notification(kind, return_request, extra=None):
    """Build (subject, body) for one notification kind."""
    kind = NotificationKind(kind)
    extra = extra or {}
    context = {
        'number': return_request.return_number,
        'reason': extra.get('reason') or return_request.rejection_reason,
        'amount': return_request.refund_amount,
        'method': return_request.get_refund_method_display(),
    }
    tracking_url = f"{settings.RETURNS_SITE_URL.rstrip('/')}/returns/track/{return_request.pk}"

    body = (
        f"Hello {return_request.customer_name},\n\n"
        f"{BODIES[kind].format(**context)}\n\n"
        f"Track your return: {tracking_url}\n"
    )
    return SUBJECTS[kind].format(**context), body


@shared_task(bind=True, max_retries=3, default_retry_delay=60, ignore_result=True)
def send_return_notification(self, kind, return_id, extra=None):
    """
    Send one lifecycle email.

    kind:      NotificationKind value ('created', 'approved', ...)
    return_id: ReturnRequest primary key
    extra:     kind-specific data, e.g. {'reason': ...} for rejections
    """
    return_request = ReturnRequest.objects.filter(pk=return_id).first()
    if return_request is None:
        logger.warning(f'Notification {kind} skipped: return {return_id} no longer exists')
        return

    subject, body = compose_notification(kind, return_request, extra)

    try:
        send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [return_request.customer_email],
            fail_silently=False,
        )
    except Exception as exc:
        logger.error(f'Sending {kind} email for {return_request.return_number} failed: {exc}')
        raise self.retry(exc=exc)

    logger.info(f'Sent {kind} email for {return_request.return_number} to {return_request.customer_email}')
