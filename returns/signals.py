"""
Returns Module - Domain Events

Fired after a lifecycle step has been persisted. Receivers get the
ReturnRequest as `return_request`. Receiver errors are logged and never
undo the step that fired the event.
"""

import logging

from django.dispatch import Signal

logger = logging.getLogger('returns.signals')

return_created = Signal()
return_approved = Signal()
return_received = Signal()
refund_processed = Signal()


def fire(signal, return_request, **extra):
    responses = signal.send_robust(sender=type(return_request), return_request=return_request, **extra)
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                f'Receiver {receiver!r} failed for return {return_request.return_number}: {response}',
                exc_info=response,
            )
    return responses
