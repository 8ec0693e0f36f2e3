"""
Return lifecycle tests: creation, status transitions, history, reads.
"""

from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.utils import timezone

from returns import signals
from returns.contracts import NotificationKind
from returns.models import ItemCondition, ReturnItem, ReturnRequest, ReturnStatus, ReturnStatusHistory
from returns.results import ErrorKind, IllegalTransitionError
from returns.transitions import TRANSITIONS, allowed_targets, check_transition

from .base import BaseTestCase


# ============================================================
# CREATE
# ============================================================

class CreateReturnTests(BaseTestCase):

    def test_create_return_happy_path(self):
        result = self.service.create_return(self.return_payload(customer_notes='Too small'))

        self.assertTrue(result.ok)
        self.assertEqual(result.message, 'Return request created successfully')

        return_request = result.value
        self.assertEqual(return_request.status, ReturnStatus.PENDING)
        self.assertTrue(return_request.return_number.startswith('RET-'))
        self.assertEqual(return_request.contact_id, 1001)
        self.assertEqual(return_request.customer_phone, '555-0100')
        self.assertEqual(return_request.customer_notes, 'Too small')
        self.assertEqual(return_request.total_amount, Decimal('25.00'))

        items = list(return_request.items.all())
        self.assertEqual(len(items), 2)
        self.assertEqual(items[0].item_name, 'Running Shoes')
        self.assertEqual(items[0].sku, 'SHOE-42')
        self.assertEqual(items[0].item_variation_id, 501)
        self.assertEqual(items[0].price, Decimal('10.00'))
        self.assertEqual(items[0].quantity, 2)

        history = list(return_request.status_history.all())
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].from_status, '')
        self.assertEqual(history[0].to_status, ReturnStatus.PENDING)
        self.assertEqual(history[0].comment, 'Return request created. Reason: defective')

        self.assertEqual(self.sink.kinds(), [NotificationKind.CREATED])

    def test_only_selected_items_are_stored(self):
        payload = self.return_payload()
        payload['items'][1]['selected'] = False

        return_request = self.service.create_return(payload).value
        self.assertEqual([item.sku for item in return_request.items.all()], ['SHOE-42'])

    def test_declared_total_is_kept(self):
        return_request = self.create_return(total_amount='19.99')
        self.assertEqual(return_request.total_amount, Decimal('19.99'))

    def test_invalid_request_creates_nothing(self):
        result = self.service.create_return(self.return_payload(customer_email='nope', items=[]))

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorKind.VALIDATION_FAILED)
        self.assertEqual(result.errors['customer_email'], 'Invalid email format')
        self.assertEqual(result.errors['items'], 'At least one item must be selected')
        self.assertEqual(ReturnRequest.objects.count(), 0)
        self.assertEqual(self.sink.sent, [])

    def test_duplicate_active_return_is_rejected(self):
        self.create_return()
        result = self.service.create_return(self.return_payload())

        self.assertEqual(result.error, ErrorKind.VALIDATION_FAILED)
        self.assertEqual(result.errors['order'], 'A return request already exists for this order')
        self.assertEqual(ReturnRequest.objects.count(), 1)

    def test_duplicate_check_under_lock_when_validator_misses_it(self):
        self.create_return()
        with mock.patch.object(self.validator, 'validate_return_request', return_value={
            'valid': True, 'errors': {}, 'message': 'Validation passed',
        }):
            result = self.service.create_return(self.return_payload())

        self.assertEqual(result.error, ErrorKind.VALIDATION_FAILED)
        self.assertEqual(result.errors, {'order': 'A return request already exists for this order'})
        self.assertEqual(ReturnRequest.objects.count(), 1)

    def test_item_from_another_order_is_rejected(self):
        other = self.create_order_with_line('OD-TEST-OTHER')
        payload = self.return_payload()
        payload['items'][0]['order_item_id'] = other.items.first().id

        result = self.service.create_return(payload)
        self.assertEqual(result.errors, {'items': {0: {'order_item_id': 'Item is not part of this order'}}})
        self.assertEqual(ReturnItem.objects.count(), 0)

    def test_non_returnable_line_is_rejected(self):
        payload = self.return_payload()
        payload['items'].append({
            'selected': True,
            'order_item_id': self.line_shipping.id,
            'quantity': 1,
            'reason': 'Want my money back',
        })

        result = self.service.create_return(payload)
        self.assertEqual(result.errors['items'][2], {'order_item_id': 'This item cannot be returned'})

    def test_quantity_above_ordered_is_rejected(self):
        payload = self.return_payload()
        payload['items'][1]['quantity'] = 3

        result = self.service.create_return(payload)
        self.assertEqual(result.errors['items'][1], {'quantity': 'Quantity exceeds ordered quantity (1)'})

    def test_same_line_selected_twice_is_rejected(self):
        payload = self.return_payload()
        payload['items'].append({
            'selected': True,
            'order_item_id': self.line_shoes.id,
            'quantity': 2,
            'reason': 'Too small',
        })

        result = self.service.create_return(payload)

        self.assertEqual(result.error, ErrorKind.VALIDATION_FAILED)
        self.assertEqual(result.errors, {'items': {2: {'order_item_id': 'Item is selected more than once'}}})
        self.assertFalse(ReturnRequest.objects.exists())

    def test_created_signal_is_sent(self):
        receiver = mock.Mock()
        signals.return_created.connect(receiver, weak=False)
        self.addCleanup(signals.return_created.disconnect, receiver)

        return_request = self.create_return()

        receiver.assert_called_once()
        self.assertEqual(receiver.call_args.kwargs['return_request'], return_request)

    def test_failing_signal_receiver_does_not_fail_create(self):
        def broken_receiver(**kwargs):
            raise RuntimeError('boom')

        signals.return_created.connect(broken_receiver)
        self.addCleanup(signals.return_created.disconnect, broken_receiver)

        with self.assertLogs('returns.signals', level='ERROR'):
            result = self.service.create_return(self.return_payload())
        self.assertTrue(result.ok)

    def test_store_failure_is_reported_not_raised(self):
        with mock.patch.object(self.store, 'create', side_effect=RuntimeError('db down')):
            result = self.service.create_return(self.return_payload())

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorKind.COLLABORATOR_FAILURE)
        self.assertIn('db down', result.message)


# ============================================================
# APPROVE / REJECT
# ============================================================

class ApproveRejectTests(BaseTestCase):

    def test_approve_pending_return(self):
        return_request = self.create_return()
        result = self.service.approve_return(return_request.pk, note='Photos look fine', changed_by='admin:ops')

        self.assertTrue(result.ok)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.APPROVED)
        self.assertIsNotNone(return_request.approved_at)
        self.assertEqual(return_request.admin_notes, 'Photos look fine')

        last = return_request.status_history.last()
        self.assertEqual((last.from_status, last.to_status), (ReturnStatus.PENDING, ReturnStatus.APPROVED))
        self.assertEqual(last.changed_by, 'admin:ops')
        self.assertEqual(self.sink.kinds(), [NotificationKind.CREATED, NotificationKind.APPROVED])

    def test_approve_twice_fails_and_keeps_approved_at(self):
        return_request = self.create_return()
        self.service.approve_return(return_request.pk)
        return_request.refresh_from_db()
        approved_at = return_request.approved_at

        result = self.service.approve_return(return_request.pk)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorKind.ILLEGAL_TRANSITION)
        self.assertEqual(result.message, 'Only pending returns can be approved')
        return_request.refresh_from_db()
        self.assertEqual(return_request.approved_at, approved_at)
        self.assertEqual(return_request.status_history.count(), 2)

    def test_approve_unknown_return(self):
        result = self.service.approve_return(999999)
        self.assertEqual(result.error, ErrorKind.NOT_FOUND)
        self.assertEqual(result.message, 'Return not found')

    def test_notes_are_appended(self):
        return_request = self.create_return()
        self.service.approve_return(return_request.pk, note='First look ok')
        self.service.reject_return(return_request.pk, 'Item was worn', note='Second look: stains')

        return_request.refresh_from_db()
        self.assertEqual(return_request.admin_notes, 'First look ok\n\nSecond look: stains')

    def test_reject_sets_reason_and_notifies(self):
        return_request = self.create_return()
        result = self.service.reject_return(return_request.pk, 'Outside policy')

        self.assertTrue(result.ok)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.REJECTED)
        self.assertEqual(return_request.rejection_reason, 'Outside policy')
        self.assertEqual(self.sink.sent[-1]['kind'], NotificationKind.REJECTED)
        self.assertEqual(self.sink.sent[-1]['extra'], {'reason': 'Outside policy'})

    def test_reject_allowed_from_every_open_status(self):
        for index, status in enumerate([ReturnStatus.PENDING, ReturnStatus.APPROVED,
                                        ReturnStatus.SHIPPED, ReturnStatus.RECEIVED]):
            with self.subTest(status=status):
                order = self.create_order_with_line(f'OD-OPEN-{index}')
                return_request = self.return_in_status(status, order=order)
                self.assertTrue(self.service.reject_return(return_request.pk, 'No').ok)

    def test_reject_fails_for_closed_statuses(self):
        for index, status in enumerate([ReturnStatus.COMPLETED, ReturnStatus.REFUNDED,
                                        ReturnStatus.REJECTED, ReturnStatus.CANCELLED]):
            with self.subTest(status=status):
                order = self.create_order_with_line(f'OD-CLOSED-{index}')
                return_request = self.return_in_status(status, order=order)

                result = self.service.reject_return(return_request.pk, 'Too late')

                self.assertEqual(result.error, ErrorKind.ILLEGAL_TRANSITION)
                self.assertEqual(result.message, 'Cannot reject completed return')
                return_request.refresh_from_db()
                self.assertEqual(return_request.status, status)

    def test_approve_after_reject_sees_new_status(self):
        # Second admin acts on a stale view of the return
        return_request = self.create_return()
        stale = ReturnRequest.objects.get(pk=return_request.pk)
        self.service.reject_return(return_request.pk, 'Fraud suspected')

        result = self.service.approve_return(stale.pk)

        self.assertEqual(result.error, ErrorKind.ILLEGAL_TRANSITION)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.REJECTED)


# ============================================================
# SHIP / RECEIVE / CANCEL / COMPLETE / DELETE
# ============================================================

class ShippingAndReceiptTests(BaseTestCase):

    def test_mark_as_shipped(self):
        return_request = self.return_in_status(ReturnStatus.APPROVED)
        result = self.service.mark_as_shipped(return_request.pk, tracking_number='1Z999', carrier='UPS')

        self.assertTrue(result.ok)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.SHIPPED)
        self.assertEqual(return_request.tracking_number, '1Z999')
        self.assertEqual(return_request.shipping_carrier, 'UPS')

    def test_ship_requires_approval(self):
        return_request = self.create_return()
        result = self.service.mark_as_shipped(return_request.pk)
        self.assertEqual(result.message, 'Only approved returns can be marked as shipped')

    def test_receive_with_item_conditions(self):
        return_request = self.return_in_status(ReturnStatus.SHIPPED)
        shoes, socks = return_request.items.all()

        result = self.service.mark_as_received(
            return_request.pk,
            item_conditions={
                str(shoes.pk): ItemCondition.USED_GOOD,
                socks.pk: {'condition': ItemCondition.DAMAGED, 'notes': 'Hole in heel'},
            },
            quality_notes='Box was opened',
        )

        self.assertTrue(result.ok)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.RECEIVED)
        self.assertIsNotNone(return_request.received_at)
        self.assertIn('Quality Notes: Box was opened', return_request.admin_notes)

        shoes.refresh_from_db()
        socks.refresh_from_db()
        self.assertEqual(shoes.condition, ItemCondition.USED_GOOD)
        self.assertEqual(socks.condition, ItemCondition.DAMAGED)
        self.assertEqual(socks.notes, 'Hole in heel')
        self.assertEqual(self.sink.kinds()[-1], NotificationKind.RECEIVED)

    def test_receive_directly_from_approved(self):
        return_request = self.return_in_status(ReturnStatus.APPROVED)
        self.assertTrue(self.service.mark_as_received(return_request.pk).ok)

    def test_receive_requires_approved_or_shipped(self):
        return_request = self.create_return()
        result = self.service.mark_as_received(return_request.pk)

        self.assertEqual(result.error, ErrorKind.ILLEGAL_TRANSITION)
        self.assertEqual(result.message, 'Only approved or shipped returns can be marked as received')

    def test_invalid_condition_changes_nothing(self):
        return_request = self.return_in_status(ReturnStatus.APPROVED)
        shoes = return_request.items.first()

        result = self.service.mark_as_received(
            return_request.pk,
            item_conditions={shoes.pk: 'like_new', 424242: ItemCondition.NEW},
            quality_notes='Should not be saved',
        )

        self.assertEqual(result.error, ErrorKind.VALIDATION_FAILED)
        self.assertEqual(result.errors['item_conditions'][str(shoes.pk)], "Invalid condition 'like_new'")
        self.assertEqual(result.errors['item_conditions']['424242'], 'Item does not belong to this return')
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.APPROVED)
        self.assertEqual(return_request.admin_notes, '')

    def test_update_item_conditions(self):
        return_request = self.create_return()
        shoes = return_request.items.first()

        result = self.service.update_item_conditions(return_request.pk, {shoes.pk: ItemCondition.DEFECTIVE})

        self.assertTrue(result.ok)
        shoes.refresh_from_db()
        self.assertEqual(shoes.condition, ItemCondition.DEFECTIVE)

    def test_cancel_pending_return(self):
        return_request = self.create_return()
        result = self.service.cancel_return(return_request.pk)

        self.assertTrue(result.ok)
        self.assertEqual(result.message, 'Return request cancelled successfully')
        last = ReturnStatusHistory.objects.filter(return_request=return_request).last()
        self.assertEqual(last.to_status, ReturnStatus.CANCELLED)
        self.assertEqual(last.changed_by, 'customer')

    def test_cannot_cancel_received_return(self):
        return_request = self.return_in_status(ReturnStatus.RECEIVED)
        result = self.service.cancel_return(return_request.pk)

        self.assertEqual(result.error, ErrorKind.ILLEGAL_TRANSITION)
        self.assertIn('Cancellation allowed only in: pending, approved', result.message)

    def test_complete_refunded_return(self):
        return_request = self.return_in_status(ReturnStatus.REFUNDED)
        self.assertTrue(self.service.complete_return(return_request.pk, note='Closed').ok)

    def test_complete_requires_refund(self):
        return_request = self.return_in_status(ReturnStatus.RECEIVED)
        result = self.service.complete_return(return_request.pk)
        self.assertEqual(result.message, 'Only refunded returns can be completed')

    def test_delete_return(self):
        return_request = self.create_return()
        self.assertTrue(self.service.delete_return(return_request.pk).ok)
        self.assertFalse(ReturnRequest.objects.filter(pk=return_request.pk).exists())
        self.assertEqual(self.service.delete_return(return_request.pk).error, ErrorKind.NOT_FOUND)


# ============================================================
# TRANSITION TABLE
# ============================================================

class TransitionTableTests(BaseTestCase):

    def test_every_status_has_an_entry(self):
        self.assertEqual(set(TRANSITIONS), set(ReturnStatus))

    def test_closed_statuses_have_no_exits(self):
        for status in (ReturnStatus.COMPLETED, ReturnStatus.REJECTED, ReturnStatus.CANCELLED):
            self.assertEqual(allowed_targets(status), frozenset())

    def test_illegal_transition_raises(self):
        with self.assertRaises(IllegalTransitionError):
            check_transition(ReturnStatus.PENDING, ReturnStatus.REFUNDED)
        self.assertEqual(check_transition('pending', 'approved'), ReturnStatus.APPROVED)

    def test_unknown_status_is_not_accepted(self):
        with self.assertRaises(ValueError):
            check_transition('lost_in_transit', ReturnStatus.RECEIVED)


# ============================================================
# READ SIDE
# ============================================================

class ReadSideTests(BaseTestCase):

    def test_available_actions_follow_status(self):
        expected = {
            ReturnStatus.PENDING: ['approve', 'reject', 'cancel'],
            ReturnStatus.APPROVED: ['mark_shipped', 'mark_received', 'cancel'],
            ReturnStatus.SHIPPED: ['mark_received'],
            ReturnStatus.RECEIVED: ['refund'],
            ReturnStatus.REFUNDED: [],
            ReturnStatus.COMPLETED: [],
            ReturnStatus.CANCELLED: [],
        }
        for status, actions in expected.items():
            with self.subTest(status=status):
                self.assertEqual(self.service.get_available_actions(ReturnRequest(status=status)), actions)

    def test_status_labels(self):
        self.assertEqual(self.service.get_status_label('shipped'), 'Shipped Back')
        self.assertEqual(self.service.get_status_label('mystery'), 'mystery')
        statuses = self.service.get_available_statuses()
        self.assertEqual(len(statuses), len(ReturnStatus))
        self.assertIn({'value': 'pending', 'label': 'Pending Approval'}, statuses)

    def test_return_reasons_come_from_policy(self):
        self.assertIn('defective', self.service.get_return_reasons())

    def test_get_return_and_history(self):
        return_request = self.return_in_status(ReturnStatus.APPROVED)

        self.assertEqual(self.service.get_return(return_request.pk).value, return_request)
        history = self.service.get_status_history(return_request.pk).value
        self.assertEqual([h.to_status for h in history], ['pending', 'approved'])
        self.assertEqual(self.service.get_status_history(999999).error, ErrorKind.NOT_FOUND)

    def test_returns_for_contact(self):
        self.create_return()
        self.assertEqual(len(self.service.get_returns_for_contact(1001).value), 1)
        self.assertEqual(self.service.get_returns_for_contact(4242).value, [])

    def test_search_filters_and_pagination(self):
        first = self.create_return()
        second_order = self.create_order_with_line('OD-TEST-SEARCH', contact_id=3003)
        second = self.create_return(order=second_order, customer_name='Maria Search')
        self.service.approve_return(second.pk)

        page = self.service.search_returns({'status': 'approved'}).value
        self.assertEqual([r.pk for r in page['data']], [second.pk])

        page = self.service.search_returns({'search_term': 'maria'}).value
        self.assertEqual(page['total'], 1)

        page = self.service.search_returns({}, page=2, per_page=1).value
        self.assertEqual(page['total'], 2)
        self.assertEqual(page['total_pages'], 2)
        self.assertEqual([r.pk for r in page['data']], [first.pk])

        tomorrow = (timezone.now() + timedelta(days=1)).date()
        self.assertEqual(self.service.search_returns({'date_from': tomorrow}).value['total'], 0)

    def test_statistics(self):
        self.return_in_status(ReturnStatus.REFUNDED)
        pending_order = self.create_order_with_line('OD-TEST-STATS', contact_id=5005)
        self.create_return(order=pending_order)

        stats = self.service.get_statistics().value
        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['pending'], 1)
        self.assertEqual(stats['approved'], 0)
        self.assertEqual(stats['completed'], 0)
        self.assertEqual(stats['total_refunded'], Decimal('25.00'))

    def test_detailed_statistics(self):
        self.return_in_status(ReturnStatus.REFUNDED)

        stats = self.service.get_detailed_statistics().value
        self.assertEqual(stats['by_status']['refunded'], 1)
        self.assertEqual(stats['top_return_reasons'], {'defective': 1})
        self.assertIsNotNone(stats['average_processing_days'])

    def test_export_rows(self):
        return_request = self.create_return()
        rows = self.service.export_returns().value

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['return_number'], return_request.return_number)
        self.assertEqual(set(rows[0]), {
            'return_number', 'order_id', 'customer_name', 'customer_email',
            'status', 'total_amount', 'created_at', 'updated_at',
        })

    def test_export_walks_all_pages(self):
        self.create_return()
        other = self.create_order_with_line('OD-TEST-EXPORT', contact_id=6006)
        self.create_return(order=other)

        self.assertEqual(len(self.service.export_returns(page_size=1).value), 2)
