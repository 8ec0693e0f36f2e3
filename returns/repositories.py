"""
Returns Module - Django ORM Adapters

Concrete implementations of the collaborator contracts on top of the models
in this app. Row locks (select_for_update) give every admin action
read-modify-write atomicity per return: two admins approving and rejecting
the same return at once are serialized, and the second one re-checks the
status the first one left behind.
"""

import logging
import math
import uuid
from contextlib import contextmanager

from django.db import transaction
from django.db.models import Count, Q, Sum

from .contracts import CreditIssuer, DuplicateReturnError, OrderGateway, ReturnStore
from .models import (
    CreditNote,
    INACTIVE_STATUSES,
    Order,
    OrderItem,
    Payment,
    RefundMethod,
    ReturnItem,
    ReturnRequest,
    ReturnStatus,
    ReturnStatusHistory,
)
from .results import CollaboratorError

logger = logging.getLogger('returns.repositories')

MAX_RETURN_NUMBER_ATTEMPTS = 5
MAX_PER_PAGE = 500


def _in_period(queryset, date_from=None, date_to=None):
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)
    return queryset


# ============================================================
# RETURN STORE
# ============================================================

class DjangoReturnStore(ReturnStore):

    def find_by_id(self, return_id):
        return ReturnRequest.objects.filter(pk=return_id).first()

    def find_by_id_with_items(self, return_id):
        return ReturnRequest.objects.prefetch_related('items').filter(pk=return_id).first()

    def find_by_return_number(self, return_number):
        return ReturnRequest.objects.filter(return_number=return_number).first()

    def find_by_contact(self, contact_id):
        return list(ReturnRequest.objects.filter(contact_id=contact_id).order_by('-created_at', '-id'))

    def has_active_return(self, order_id, contact_id):
        return ReturnRequest.objects.filter(
            order_id=order_id,
            contact_id=contact_id,
        ).exclude(status__in=INACTIVE_STATUSES).exists()

    def search(self, filters, page=1, per_page=50):
        filters = filters or {}
        queryset = ReturnRequest.objects.all()

        if filters.get('status'):
            queryset = queryset.filter(status=filters['status'])

        queryset = _in_period(queryset, filters.get('date_from'), filters.get('date_to'))

        search_term = filters.get('search_term')
        if search_term:
            queryset = queryset.filter(
                Q(return_number__icontains=search_term)
                | Q(customer_email__icontains=search_term)
                | Q(customer_name__icontains=search_term)
            )

        page = max(int(page or 1), 1)
        per_page = min(max(int(per_page or 50), 1), MAX_PER_PAGE)

        total = queryset.count()
        offset = (page - 1) * per_page
        results = list(queryset.order_by('-created_at', '-id')[offset:offset + per_page])

        return {
            'data': results,
            'total': total,
            'page': page,
            'per_page': per_page,
            'total_pages': math.ceil(total / per_page) if total else 0,
        }

    def create(self, data, items):
        order_id = data['order_id']
        contact_id = data.get('contact_id') or 0

        with transaction.atomic():
            # Lock the order row so two concurrent submissions for the same
            # order cannot both pass the duplicate check below.
            list(Order.objects.select_for_update().filter(pk=order_id).values_list('pk', flat=True))

            if self.has_active_return(order_id, contact_id):
                raise DuplicateReturnError('A return request already exists for this order')

            return_request = ReturnRequest.objects.create(
                return_number=self._unique_return_number(),
                order_id=order_id,
                contact_id=contact_id,
                customer_email=data['customer_email'],
                customer_name=data['customer_name'],
                customer_phone=data.get('customer_phone') or '',
                return_reason=data['return_reason'],
                customer_notes=data.get('customer_notes') or '',
                total_amount=data.get('total_amount') or 0,
                status=ReturnStatus.PENDING,
            )

            ReturnItem.objects.bulk_create([
                ReturnItem(
                    return_request=return_request,
                    order_item_id=item['order_item_id'],
                    item_variation_id=item.get('item_variation_id') or 0,
                    item_name=item.get('item_name') or '',
                    sku=item.get('sku') or '',
                    quantity=item['quantity'],
                    price=item.get('price') or 0,
                    reason=item.get('reason') or '',
                    notes=item.get('notes') or '',
                    condition=item.get('condition') or '',
                    images=list(item.get('images') or []),
                )
                for item in items
            ])

        return return_request

    def _unique_return_number(self):
        for _ in range(MAX_RETURN_NUMBER_ATTEMPTS):
            candidate = ReturnRequest.generate_return_number()
            if not ReturnRequest.objects.filter(return_number=candidate).exists():
                return candidate
            logger.warning(f'Return number collision on {candidate}, regenerating')
        raise CollaboratorError('Could not generate a unique return number')

    def update(self, return_request):
        return_request.save()
        return return_request

    def delete(self, return_id):
        deleted, _ = ReturnRequest.objects.filter(pk=return_id).delete()
        return deleted > 0

    @contextmanager
    def locked(self, return_id):
        with transaction.atomic():
            yield ReturnRequest.objects.select_for_update().filter(pk=return_id).first()

    def get_items(self, return_id):
        return list(ReturnItem.objects.filter(return_request_id=return_id).order_by('id'))

    def update_item(self, item):
        item.save(update_fields=['condition', 'notes', 'updated_at'])
        return item

    def add_status_history(self, return_request, from_status, to_status, changed_by='system', comment=''):
        return ReturnStatusHistory.objects.create(
            return_request=return_request,
            from_status=from_status or '',
            to_status=to_status,
            changed_by=changed_by,
            comment=comment or '',
        )

    def get_status_history(self, return_id):
        return list(ReturnStatusHistory.objects.filter(return_request_id=return_id).order_by('created_at', 'id'))

    def count_by_status(self, status=None, date_from=None, date_to=None):
        queryset = _in_period(ReturnRequest.objects.all(), date_from, date_to)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.count()

    def total_refunded(self, date_from=None, date_to=None):
        queryset = _in_period(
            ReturnRequest.objects.filter(status__in=[ReturnStatus.REFUNDED, ReturnStatus.COMPLETED]),
            date_from,
            date_to,
        )
        return queryset.aggregate(total=Sum('refund_amount'))['total'] or 0

    def count_by_reason(self, date_from=None, date_to=None):
        rows = (
            _in_period(ReturnRequest.objects.all(), date_from, date_to)
            .values('return_reason')
            .annotate(count=Count('id'))
            .order_by('-count', 'return_reason')
        )
        return {row['return_reason']: row['count'] for row in rows}

    def refunded_durations(self, date_from=None, date_to=None):
        return list(
            _in_period(ReturnRequest.objects.filter(refunded_at__isnull=False), date_from, date_to)
            .values_list('created_at', 'refunded_at')
        )


# ============================================================
# ORDER & PAYMENT GATEWAY
# ============================================================

class DjangoOrderGateway(OrderGateway):

    def find_order_by_id(self, order_id):
        return Order.objects.filter(pk=order_id).first()

    def get_order_items(self, order_id):
        return list(OrderItem.objects.filter(order_id=order_id).order_by('id'))

    def get_payments(self, order_id):
        return list(Payment.objects.filter(order_id=order_id).order_by('created_at', 'id'))

    def create_payment(self, data):
        return Payment.objects.create(**data)

    def link_payment_to_order(self, payment_id, order_id):
        updated = Payment.objects.filter(pk=payment_id).update(order_id=order_id)
        if not updated:
            raise CollaboratorError(f'Payment {payment_id} not found')


# ============================================================
# CREDIT ISSUER
# ============================================================

class DjangoCreditIssuer(CreditIssuer):
    """Issues CreditNote rows; the code is what the customer redeems."""

    def issue_store_credit(self, return_request, amount):
        return self._issue(return_request, amount, RefundMethod.STORE_CREDIT, 'SC')

    def issue_exchange(self, return_request, amount):
        return self._issue(return_request, amount, RefundMethod.EXCHANGE, 'EX')

    def _issue(self, return_request, amount, kind, prefix):
        note = CreditNote.objects.create(
            return_request=return_request,
            kind=kind,
            code=f'{prefix}-{uuid.uuid4().hex[:10].upper()}',
            amount=amount,
            contact_id=return_request.contact_id,
        )
        logger.info(f'{kind} {note.code} issued for return {return_request.return_number}: {amount}')
        return note.code
