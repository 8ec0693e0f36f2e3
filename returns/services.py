"""
Returns Module - Lifecycle Service

The return status state machine. Every mutating operation follows the same
envelope:

    1. lock the return (store.locked) - not found is reported as such
    2. check the current status
    3. mutate, persist, append to the status history
    4. after the lock is released: fire the domain event, queue the
       customer notification

Operations return ServiceResult; nothing raises out of this class.
"""

import logging
from decimal import Decimal

from django.utils import timezone

from . import signals
from .contracts import DuplicateReturnError, NotificationKind
from .models import ItemCondition, ReturnStatus
from .results import (
    IllegalTransitionError,
    NotFoundError,
    ValidationFailedError,
    service_ok,
    service_operation,
)
from .transitions import check_transition
from .validation import as_decimal, as_int

logger = logging.getLogger('returns.services')

RETURN_NOT_FOUND = 'Return not found'


class NotifyingService:
    """Shared helpers for services that emit customer notifications."""

    def __init__(self, sink, policy):
        self.sink = sink
        self.policy = policy

    def _notify(self, kind, return_request, extra=None):
        """Best effort: a failing sink is logged, never propagated."""
        if not self.policy.send_notifications:
            return
        try:
            self.sink.notify(kind, return_request, extra)
        except Exception as exc:
            logger.error(
                f'Notification {NotificationKind(kind).value} for {return_request.return_number} failed: {exc}',
                exc_info=True,
            )


class ReturnService(NotifyingService):

    def __init__(self, store, gateway, sink, policy, validator):
        super().__init__(sink, policy)
        self.store = store
        self.gateway = gateway
        self.validator = validator

    # ============================================================
    # CREATE
    # ============================================================

    @service_operation('creating return')
    def create_return(self, data, changed_by='customer'):
        """
        Validate and persist a customer's return request.

        Only items marked `selected` become ReturnItems. Item name, SKU,
        variation and unit price are copied from the order line.
        """
        validation = self.validator.validate_return_request(data)
        if not validation['valid']:
            raise ValidationFailedError(validation['message'], validation['errors'])

        order = self.gateway.find_order_by_id(data['order_id'])
        if order is None:
            raise NotFoundError('Order not found')

        items = self._build_items(order, data['items'])

        payload = {
            'order_id': order.pk,
            'contact_id': order.contact_id or 0,
            'customer_email': str(data['customer_email']).strip(),
            'customer_name': str(data['customer_name']).strip(),
            'customer_phone': data.get('customer_phone') or order.customer_phone or '',
            'return_reason': data['return_reason'],
            'customer_notes': data.get('customer_notes') or '',
            'total_amount': as_decimal(
                data.get('total_amount'),
                default=sum((item['price'] * item['quantity'] for item in items), Decimal('0')),
            ),
        }

        try:
            return_request = self.store.create(payload, items)
        except DuplicateReturnError as exc:
            raise ValidationFailedError('Validation failed', {'order': str(exc)})

        self.record_status_change(
            return_request,
            '',
            ReturnStatus.PENDING,
            changed_by,
            f"Return request created. Reason: {data['return_reason']}",
        )

        logger.info(f'Return created: {return_request.return_number} for order {order.pk}')

        signals.fire(signals.return_created, return_request)
        self._notify(NotificationKind.CREATED, return_request)

        return service_ok(return_request, 'Return request created successfully')

    def _build_items(self, order, submitted_items):
        order_lines = {line.pk: line for line in self.gateway.get_order_items(order.pk)}
        items = []
        errors = {}
        seen_lines = set()

        for index, item in enumerate(submitted_items):
            if not isinstance(item, dict) or not item.get('selected'):
                continue

            line = order_lines.get(as_int(item.get('order_item_id')))
            quantity = int(item['quantity'])

            if line is None:
                errors[index] = {'order_item_id': 'Item is not part of this order'}
                continue
            if line.pk in seen_lines:
                errors[index] = {'order_item_id': 'Item is selected more than once'}
                continue
            seen_lines.add(line.pk)
            if not self.validator.can_return_item(line):
                errors[index] = {'order_item_id': 'This item cannot be returned'}
                continue
            if quantity > line.quantity:
                errors[index] = {'quantity': f'Quantity exceeds ordered quantity ({line.quantity})'}
                continue

            items.append({
                'order_item_id': line.pk,
                'item_variation_id': line.item_variation_id,
                'item_name': line.item_name,
                'sku': line.sku,
                'quantity': quantity,
                'price': line.unit_price,
                'reason': str(item['reason']).strip(),
                'notes': item.get('notes') or '',
                'images': list(item.get('images') or []),
            })

        if errors:
            raise ValidationFailedError('Validation failed', {'items': errors})
        return items

    # ============================================================
    # ADMIN TRANSITIONS
    # ============================================================

    @service_operation('approving return')
    def approve_return(self, return_id, note='', changed_by='admin'):
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            if return_request.status != ReturnStatus.PENDING:
                raise IllegalTransitionError('Only pending returns can be approved')

            return_request.approved_at = timezone.now()
            return_request.append_admin_note(note)
            self._move(return_request, ReturnStatus.APPROVED, changed_by, note)

        logger.info(f'Return approved: {return_request.return_number}')

        signals.fire(signals.return_approved, return_request)
        self._notify(NotificationKind.APPROVED, return_request)

        return service_ok(return_request, 'Return approved successfully')

    @service_operation('rejecting return')
    def reject_return(self, return_id, rejection_reason, note='', changed_by='admin'):
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            if return_request.is_terminal():
                raise IllegalTransitionError('Cannot reject completed return')

            return_request.rejection_reason = rejection_reason or ''
            return_request.append_admin_note(note)
            self._move(return_request, ReturnStatus.REJECTED, changed_by, note or rejection_reason)

        logger.info(f'Return rejected: {return_request.return_number} ({rejection_reason})')

        self._notify(NotificationKind.REJECTED, return_request, {'reason': rejection_reason})

        return service_ok(return_request, 'Return rejected successfully')

    @service_operation('marking return as shipped')
    def mark_as_shipped(self, return_id, tracking_number='', carrier='', changed_by='customer'):
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            if return_request.status != ReturnStatus.APPROVED:
                raise IllegalTransitionError('Only approved returns can be marked as shipped')

            if tracking_number:
                return_request.tracking_number = tracking_number
            if carrier:
                return_request.shipping_carrier = carrier

            comment = f'Shipped with {carrier or "unknown carrier"}'
            if tracking_number:
                comment += f' | Tracking: {tracking_number}'
            self._move(return_request, ReturnStatus.SHIPPED, changed_by, comment)

        logger.info(f'Return shipped back: {return_request.return_number} {tracking_number}')

        return service_ok(return_request, 'Return marked as shipped')

    @service_operation('marking return as received')
    def mark_as_received(self, return_id, item_conditions=None, quality_notes='', changed_by='admin'):
        """
        Record that the parcel arrived and was inspected.

        item_conditions: {item_id: condition} or {item_id: {'condition': ..., 'notes': ...}}
        Only approved or shipped returns can be received.
        """
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            if return_request.status not in (ReturnStatus.APPROVED, ReturnStatus.SHIPPED):
                raise IllegalTransitionError('Only approved or shipped returns can be marked as received')

            # Validate every condition before touching anything
            updates = self._resolve_item_conditions(return_request, item_conditions)

            return_request.received_at = timezone.now()
            return_request.append_admin_note(quality_notes, label='Quality Notes')
            self._move(return_request, ReturnStatus.RECEIVED, changed_by, quality_notes)
            self._apply_item_conditions(updates)

        logger.info(f'Return received: {return_request.return_number} ({len(updates)} item(s) inspected)')

        signals.fire(signals.return_received, return_request)
        self._notify(NotificationKind.RECEIVED, return_request)

        return service_ok(return_request, 'Return marked as received')

    @service_operation('cancelling return')
    def cancel_return(self, return_id, changed_by='customer', comment='Cancelled by customer'):
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            if not return_request.can_be_cancelled():
                raise IllegalTransitionError(
                    f'Cannot cancel return in "{return_request.status}" status. '
                    f'Cancellation allowed only in: pending, approved'
                )
            self._move(return_request, ReturnStatus.CANCELLED, changed_by, comment)

        logger.info(f'Return cancelled: {return_request.return_number} by {changed_by}')

        return service_ok(return_request, 'Return request cancelled successfully')

    @service_operation('completing return')
    def complete_return(self, return_id, note='', changed_by='admin'):
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            if return_request.status != ReturnStatus.REFUNDED:
                raise IllegalTransitionError('Only refunded returns can be completed')

            return_request.append_admin_note(note)
            self._move(return_request, ReturnStatus.COMPLETED, changed_by, note)

        logger.info(f'Return completed: {return_request.return_number}')

        return service_ok(return_request, 'Return completed')

    @service_operation('deleting return')
    def delete_return(self, return_id):
        """Administrative delete. Independent of the state machine."""
        if not self.store.delete(return_id):
            raise NotFoundError(RETURN_NOT_FOUND)
        logger.warning(f'Return {return_id} deleted')
        return service_ok(None, 'Return deleted')

    # ============================================================
    # STATUS HISTORY & ITEM CONDITIONS
    # ============================================================

    def record_status_change(self, return_request, from_status, to_status, changed_by='system', comment=''):
        """Append one entry to the audit trail. Entries are never rewritten."""
        return self.store.add_status_history(
            return_request,
            str(from_status or ''),
            str(to_status),
            changed_by,
            comment,
        )

    @service_operation('updating item conditions')
    def update_item_conditions(self, return_id, item_conditions):
        with self.store.locked(return_id) as return_request:
            if return_request is None:
                raise NotFoundError(RETURN_NOT_FOUND)
            updates = self._resolve_item_conditions(return_request, item_conditions)
            self._apply_item_conditions(updates)

        return service_ok([item for item, _, _ in updates], 'Item conditions updated')

    def _resolve_item_conditions(self, return_request, item_conditions):
        """Return [(item, condition, notes)] or raise with every bad entry."""
        if not item_conditions:
            return []

        items = {item.pk: item for item in self.store.get_items(return_request.pk)}
        valid_conditions = set(ItemCondition.values)
        updates = []
        errors = {}

        for raw_item_id, entry in item_conditions.items():
            if isinstance(entry, dict):
                condition, notes = entry.get('condition'), entry.get('notes')
            else:
                condition, notes = entry, None

            item = items.get(as_int(raw_item_id))
            if item is None:
                errors[str(raw_item_id)] = 'Item does not belong to this return'
            elif condition not in valid_conditions:
                errors[str(raw_item_id)] = f"Invalid condition '{condition}'"
            else:
                updates.append((item, condition, notes))

        if errors:
            raise ValidationFailedError('Invalid item conditions', {'item_conditions': errors})
        return updates

    def _apply_item_conditions(self, updates):
        for item, condition, notes in updates:
            item.condition = condition
            if notes:
                item.notes = notes
            self.store.update_item(item)

    def _move(self, return_request, target, changed_by, comment=''):
        previous = return_request.status
        return_request.status = check_transition(previous, target)
        self.store.update(return_request)
        self.record_status_change(return_request, previous, target, changed_by, comment)

    # ============================================================
    # READ SIDE
    # ============================================================

    @service_operation('loading return')
    def get_return(self, return_id):
        return_request = self.store.find_by_id_with_items(return_id)
        if return_request is None:
            raise NotFoundError(RETURN_NOT_FOUND)
        return service_ok(return_request)

    @service_operation('loading returns for contact')
    def get_returns_for_contact(self, contact_id):
        return service_ok(self.store.find_by_contact(contact_id))

    @service_operation('searching returns')
    def search_returns(self, filters=None, page=1, per_page=50):
        return service_ok(self.store.search(filters or {}, page, per_page))

    @service_operation('loading status history')
    def get_status_history(self, return_id):
        if self.store.find_by_id(return_id) is None:
            raise NotFoundError(RETURN_NOT_FOUND)
        return service_ok(self.store.get_status_history(return_id))

    def get_available_actions(self, return_request):
        """Actions the admin UI may offer. Derived from the status alone."""
        status = ReturnStatus(return_request.status)
        actions = []

        if status == ReturnStatus.PENDING:
            actions += ['approve', 'reject']
        if status == ReturnStatus.APPROVED:
            actions.append('mark_shipped')
        if status in (ReturnStatus.SHIPPED, ReturnStatus.APPROVED):
            actions.append('mark_received')
        if return_request.can_be_refunded():
            actions.append('refund')
        if return_request.can_be_cancelled():
            actions.append('cancel')

        return actions

    @staticmethod
    def get_status_label(status):
        try:
            return ReturnStatus(status).label
        except ValueError:
            return status

    @staticmethod
    def get_available_statuses():
        return [{'value': status.value, 'label': status.label} for status in ReturnStatus]

    def get_return_reasons(self):
        return list(self.policy.return_reasons)

    # ============================================================
    # STATISTICS & EXPORT
    # ============================================================

    @service_operation('computing statistics')
    def get_statistics(self):
        """Snapshot recomputed from the store on every call."""
        return service_ok(self._statistics())

    def _statistics(self, date_from=None, date_to=None):
        count = self.store.count_by_status
        return {
            'total': count(None, date_from, date_to),
            'pending': count(ReturnStatus.PENDING, date_from, date_to),
            'approved': count(ReturnStatus.APPROVED, date_from, date_to),
            'completed': count(ReturnStatus.COMPLETED, date_from, date_to),
            'total_refunded': self.store.total_refunded(date_from, date_to),
        }

    @service_operation('computing detailed statistics')
    def get_detailed_statistics(self, date_from=None, date_to=None):
        stats = self._statistics(date_from, date_to)
        stats['by_status'] = {
            status.value: self.store.count_by_status(status, date_from, date_to)
            for status in ReturnStatus
        }
        stats['top_return_reasons'] = self.store.count_by_reason(date_from, date_to)

        durations = [
            (refunded_at - created_at).total_seconds() / 86400
            for created_at, refunded_at in self.store.refunded_durations(date_from, date_to)
        ]
        stats['average_processing_days'] = round(sum(durations) / len(durations), 1) if durations else None
        return service_ok(stats)

    @service_operation('exporting returns')
    def export_returns(self, filters=None, page_size=500):
        """
        Rows for an external CSV/spreadsheet renderer, one per return.
        Columns: return_number, order_id, customer_name, customer_email,
        status, total_amount, created_at, updated_at.
        """
        rows = []
        page = 1
        while True:
            result = self.store.search(filters or {}, page, page_size)
            rows.extend(
                {
                    'return_number': r.return_number,
                    'order_id': r.order_id,
                    'customer_name': r.customer_name,
                    'customer_email': r.customer_email,
                    'status': r.status,
                    'total_amount': r.total_amount,
                    'created_at': r.created_at,
                    'updated_at': r.updated_at,
                }
                for r in result['data']
            )
            if page >= result['total_pages']:
                break
            page += 1
        return service_ok(rows)
