"""
Returns Module - Eligibility Validator

Decides whether an order may be returned and whether a submitted return
request is well-formed. Request validation never stops at the first problem:
the customer gets the complete error set in one round trip.
"""

from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.utils import timezone

from .models import OrderItem
from .results import CollaboratorError


def as_int(value):
    """int(value), or None when it is not a whole number."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def as_decimal(value, default=None):
    """Decimal(value), or `default` when it is blank or not a number."""
    if value in (None, ''):
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


class EligibilityValidator:

    def __init__(self, store, gateway, policy):
        self.store = store
        self.gateway = gateway
        self.policy = policy

    @property
    def return_period_days(self):
        return self.policy.return_period_days

    @property
    def photos_required(self):
        return self.policy.require_photos

    # --------------------------------------------------------
    # Order eligibility
    # --------------------------------------------------------

    def validate_order_for_return(self, order, now=None):
        """
        Check an order against the return rules:
            1. it exists
            2. it has been handed to the carrier or delivered
            3. it is inside the return window (whole days since it was placed)
            4. it has no other active return

        Returns {'eligible', 'message'} plus 'deadline' and 'days_left' on success.
        """
        if order is None:
            return {'eligible': False, 'message': 'Order not found'}

        if order.status not in self.policy.completed_order_statuses:
            return {'eligible': False, 'message': 'Order must be completed before return'}

        period = self.policy.return_period_days
        now = now or timezone.now()
        elapsed_days = (now - order.ordered_at).days

        if elapsed_days > period:
            return {
                'eligible': False,
                'message': f'Return period has expired (max {period} days)',
            }

        if self.store.has_active_return(order.pk, order.contact_id or 0):
            return {
                'eligible': False,
                'message': 'A return request already exists for this order',
            }

        return {
            'eligible': True,
            'message': 'Order is eligible for return',
            'deadline': (order.ordered_at + timedelta(days=period)).date(),
            'days_left': period - elapsed_days,
        }

    # --------------------------------------------------------
    # Request validation
    # --------------------------------------------------------

    def validate_return_request(self, data):
        """
        Validate a customer's return request.

        Expected shape:
        {
            "order_id": 123,
            "customer_email": "jane@example.com",
            "customer_name": "Jane Doe",
            "return_reason": "defective",
            "items": [
                {"selected": true, "order_item_id": 7, "quantity": 1,
                 "reason": "Screen cracked", "images": ["returns/7/a.jpg"]}
            ]
        }

        Raises CollaboratorError when the order lookup itself fails.
        """
        errors = {}

        order_id = data.get('order_id')
        if not order_id:
            errors['order_id'] = 'Order ID is required'

        email = str(data.get('customer_email') or '').strip()
        if not email:
            errors['customer_email'] = 'Email is required'
        else:
            try:
                validate_email(email)
            except ValidationError:
                errors['customer_email'] = 'Invalid email format'

        if not str(data.get('customer_name') or '').strip():
            errors['customer_name'] = 'Name is required'

        reason = data.get('return_reason')
        if not reason:
            errors['return_reason'] = 'Return reason is required'
        elif self.policy.return_reasons and reason not in self.policy.return_reasons:
            errors['return_reason'] = 'Invalid return reason'

        items_error = self._validate_items(data.get('items'))
        if items_error:
            errors['items'] = items_error

        if order_id:
            order_error = self._validate_order_reference(order_id)
            if order_error:
                errors['order'] = order_error

        return {
            'valid': not errors,
            'errors': errors,
            'message': 'Validation failed' if errors else 'Validation passed',
        }

    def _validate_items(self, items):
        if not items or not isinstance(items, (list, tuple)):
            return 'At least one item must be selected'

        item_errors = {}
        has_selected_item = False

        for index, item in enumerate(items):
            if not isinstance(item, dict) or not item.get('selected'):
                continue
            has_selected_item = True

            problems = {}
            quantity = as_int(item.get('quantity'))
            if quantity is None or quantity < 1:
                problems['quantity'] = 'Invalid quantity'
            if not str(item.get('reason') or '').strip():
                problems['reason'] = 'Return reason is required for each item'
            if self.policy.require_photos and not item.get('images'):
                problems['images'] = 'At least one photo is required'

            if problems:
                item_errors[index] = problems

        if not has_selected_item:
            return 'No items selected for return'
        return item_errors or None

    def _validate_order_reference(self, order_id):
        """Field error for an unusable order, None when it is fine. Lookup failures propagate."""
        order_pk = as_int(order_id)
        if order_pk is None:
            return 'Order not found'

        try:
            order = self.gateway.find_order_by_id(order_pk)
        except Exception as exc:
            raise CollaboratorError(f'Order lookup failed for order {order_pk}: {exc}') from exc

        validation = self.validate_order_for_return(order)
        if not validation['eligible']:
            return validation['message']
        return None

    # --------------------------------------------------------
    # Items and attachments
    # --------------------------------------------------------

    def can_return_item(self, order_item):
        """Only physical variation lines can be sent back (no services, shipping, vouchers)."""
        return getattr(order_item, 'item_type', None) == OrderItem.TYPE_VARIATION

    def returnable_items(self, order_id):
        return [item for item in self.gateway.get_order_items(order_id) if self.can_return_item(item)]

    def validate_image(self, upload):
        """
        Check an uploaded photo. `upload` is anything with .size and
        .content_type (Django's UploadedFile). Empty list means valid.
        """
        errors = []

        max_mb = self.policy.max_image_size // (1024 * 1024)
        if (getattr(upload, 'size', 0) or 0) > self.policy.max_image_size:
            errors.append(f'File size exceeds maximum allowed ({max_mb}MB)')

        if getattr(upload, 'content_type', None) not in self.policy.allowed_image_types:
            errors.append('Invalid file type. Allowed: JPG, PNG, GIF, WebP')

        return errors
