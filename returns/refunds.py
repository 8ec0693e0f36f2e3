"""
Returns Module - Refund Service

Settles a received return through one of three channels:

    original_payment → negative child payment of the order's first payment
    store_credit     → credit note redeemable in the shop
    exchange         → exchange credit for a replacement order

The strategy call and the status change share one transaction: if the
strategy fails, nothing about the return changes.
"""

import logging
from decimal import Decimal

from django.utils import timezone

from . import signals
from .contracts import NotificationKind
from .models import Payment, RefundMethod, RefundStatus, ReturnStatus
from .results import (
    CollaboratorError,
    IllegalTransitionError,
    NotFoundError,
    ValidationFailedError,
    service_ok,
    service_operation,
)
from .services import RETURN_NOT_FOUND, NotifyingService
from .transitions import check_transition
from .validation import as_decimal

logger = logging.getLogger('returns.refunds')


class RefundService(NotifyingService):

    def __init__(self, store, gateway, credit_issuer, sink, policy):
        super().__init__(sink, policy)
        self.store = store
        self.gateway = gateway
        self.credit_issuer = credit_issuer
        self.strategies = {
            RefundMethod.ORIGINAL_PAYMENT: self._refund_to_original_payment,
            RefundMethod.STORE_CREDIT: self._issue_store_credit,
            RefundMethod.EXCHANGE: self._issue_exchange,
        }

    @service_operation('processing refund')
    def process_refund(self, return_id, method=RefundMethod.ORIGINAL_PAYMENT, amount=None, note='', changed_by='admin'):
        """
        Refund a received return.

        amount defaults to the return's total_amount.
        Returns {'refund_id', 'amount', 'method'} on success.
        """
        strategy = self.strategies.get(method)
        if strategy is None:
            raise ValidationFailedError('Invalid refund method', {'method': f"Unknown refund method '{method}'"})

        try:
            with self.store.locked(return_id) as return_request:
                if return_request is None:
                    raise NotFoundError(RETURN_NOT_FOUND)
                if return_request.refund_status == RefundStatus.COMPLETED:
                    raise IllegalTransitionError('Refund already processed')
                if not return_request.can_be_refunded():
                    raise IllegalTransitionError('Return cannot be refunded in current status')

                refund_amount = self._resolve_amount(return_request, amount)
                refund_id = strategy(return_request, refund_amount)
                if not refund_id:
                    raise CollaboratorError(f'{method} refund returned no reference')

                previous = return_request.status
                return_request.status = check_transition(previous, ReturnStatus.REFUNDED)
                return_request.refund_method = method
                return_request.refund_amount = refund_amount
                return_request.refund_status = RefundStatus.COMPLETED
                return_request.refund_reference = str(refund_id)
                return_request.refunded_at = timezone.now()
                return_request.append_admin_note(note, label='Refund Note')
                self.store.update(return_request)
                self.store.add_status_history(
                    return_request,
                    previous,
                    ReturnStatus.REFUNDED,
                    changed_by,
                    f'Refunded {refund_amount} via {method}',
                )
        except (NotFoundError, IllegalTransitionError, ValidationFailedError):
            raise
        except Exception as exc:
            logger.error(f'Refund for return {return_id} failed ({method}): {exc}', exc_info=True)
            raise CollaboratorError('Failed to process refund') from exc

        logger.info(f'Refund processed: {return_request.return_number} {refund_amount} via {method} ({refund_id})')

        signals.fire(signals.refund_processed, return_request, refund_id=refund_id)
        self._notify(NotificationKind.REFUND_PROCESSED, return_request, {'refund_id': str(refund_id)})

        return service_ok(
            {'refund_id': refund_id, 'amount': refund_amount, 'method': str(method)},
            'Refund processed successfully',
        )

    @staticmethod
    def _resolve_amount(return_request, amount):
        """Refund magnitude. The sign of a supplied amount is ignored; zero is refused."""
        if amount in (None, ''):
            resolved = Decimal(return_request.total_amount)
        else:
            resolved = as_decimal(amount)
            if resolved is None or not resolved.is_finite():
                raise ValidationFailedError('Invalid refund amount', {'amount': 'Amount must be a number'})

        resolved = abs(resolved)
        if resolved == 0:
            raise ValidationFailedError('Invalid refund amount', {'amount': 'Amount must be greater than zero'})
        return resolved

    # ============================================================
    # STRATEGIES
    # ============================================================

    def _refund_to_original_payment(self, return_request, amount):
        order = self.gateway.find_order_by_id(return_request.order_id)
        if order is None:
            raise CollaboratorError(f'Order {return_request.order_id} not found')

        payments = self.gateway.get_payments(order.pk)
        if not payments:
            raise CollaboratorError(f'No payment recorded for order {order.pk}')
        original = payments[0]

        refund = self.gateway.create_payment({
            'parent': original,
            'method': original.method,
            'currency': original.currency,
            'amount': -abs(amount),
            'transaction_type': Payment.TRANSACTION_REFUND,
            'status': Payment.STATUS_APPROVED,
            'payment_type': 'credit',
            'received_at': timezone.now(),
        })
        if refund is None or refund.pk is None:
            raise CollaboratorError('Payment gateway did not return a refund payment')

        self.gateway.link_payment_to_order(refund.pk, order.pk)
        return refund.pk

    def _issue_store_credit(self, return_request, amount):
        return self.credit_issuer.issue_store_credit(return_request, amount)

    def _issue_exchange(self, return_request, amount):
        return self.credit_issuer.issue_exchange(return_request, amount)

    # ============================================================
    # QUERIES
    # ============================================================

    def calculate_refund_amount(self, return_request):
        """Sum of price x quantity over the return's items, ignoring total_amount."""
        return sum(
            (Decimal(item.price) * item.quantity for item in self.store.get_items(return_request.pk)),
            Decimal('0'),
        )

    def can_refund(self, return_request):
        if return_request.status != ReturnStatus.RECEIVED:
            return {'can_refund': False, 'reason': 'Return must be received before refund'}
        if return_request.refund_status == RefundStatus.COMPLETED:
            return {'can_refund': False, 'reason': 'Refund already processed'}
        return {'can_refund': True, 'max_amount': self.calculate_refund_amount(return_request)}
