"""
Returns Module - Database Models

TABLES:
1. Order / OrderItem / Payment → Local stand-ins for the shop's order service.
                                 The return engine only reaches them through
                                 the OrderGateway contract.
2. ReturnRequest       → The return request created by a customer
3. ReturnItem          → One order line being sent back
4. ReturnStatusHistory → Every status change (audit trail)
5. CreditNote          → Store credit / exchange credit issued by a refund
"""

import random
import time

from django.core.validators import MinValueValidator
from django.db import models


# ============================================================
# ENUMERATIONS
# ============================================================

class ReturnStatus(models.TextChoices):
    """
    The closed set of return statuses.

    pending → approved → (shipped) → received → (inspecting) → refunded → completed
    rejected and cancelled are terminal side exits.
    """

    PENDING = 'pending', 'Pending Approval'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    SHIPPED = 'shipped', 'Shipped Back'
    RECEIVED = 'received', 'Received'
    INSPECTING = 'inspecting', 'Under Inspection'
    REFUNDED = 'refunded', 'Refunded'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


TERMINAL_STATUSES = frozenset({
    ReturnStatus.COMPLETED,
    ReturnStatus.REFUNDED,
    ReturnStatus.REJECTED,
    ReturnStatus.CANCELLED,
})

# Statuses that free the order for a new return request
INACTIVE_STATUSES = frozenset({ReturnStatus.REJECTED, ReturnStatus.CANCELLED})


class ItemCondition(models.TextChoices):
    """Condition assigned to a returned item during receipt inspection."""

    NEW = 'new', 'New'
    USED_GOOD = 'used_good', 'Used - Good'
    USED_FAIR = 'used_fair', 'Used - Fair'
    DAMAGED = 'damaged', 'Damaged'
    DEFECTIVE = 'defective', 'Defective'


class RefundMethod(models.TextChoices):
    ORIGINAL_PAYMENT = 'original_payment', 'Original Payment Method'
    STORE_CREDIT = 'store_credit', 'Store Credit'
    EXCHANGE = 'exchange', 'Exchange'


class RefundStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'


# ============================================================
# ORDER MODELS
# ============================================================
# In a real shop these live in a separate order service.
# We keep simplified versions here so the bundled OrderGateway has data to read.

class Order(models.Model):
    """
    Represents a customer's original order.
    Returns need: was it handed to the carrier? when was it placed? who owns it?
    """

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('shipped', 'Shipped'),
        ('delivered', 'Delivered'),
        ('cancelled', 'Cancelled'),
    ]

    order_number = models.CharField(max_length=50, unique=True, db_index=True)
    contact_id = models.IntegerField(default=0, db_index=True)   # 0 = guest checkout
    customer_name = models.CharField(max_length=200)
    customer_email = models.EmailField()
    customer_phone = models.CharField(max_length=30, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    currency = models.CharField(max_length=3, default='EUR')
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    # Order creation date - the return window is counted from here
    ordered_at = models.DateTimeField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-ordered_at']
        indexes = [
            models.Index(fields=['contact_id', 'status']),
        ]

    def __str__(self):
        return f"Order {self.order_number}"


class OrderItem(models.Model):
    """One line of an order. Only physical variation lines can be returned."""

    TYPE_VARIATION = 'variation'

    TYPE_CHOICES = [
        (TYPE_VARIATION, 'Physical Variation'),
        ('service', 'Service'),
        ('shipping', 'Shipping Costs'),
        ('voucher', 'Gift Voucher'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    item_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_VARIATION)
    item_variation_id = models.IntegerField(default=0)
    item_name = models.CharField(max_length=500)
    sku = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)

    class Meta:
        db_table = 'order_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity} x {self.item_name}"


class Payment(models.Model):
    """
    A money movement on an order. Refunds to the original payment method
    are stored as negative child payments of the original one.
    """

    TRANSACTION_PAYMENT = 'payment'
    TRANSACTION_REFUND = 'refund'

    TRANSACTION_CHOICES = [
        (TRANSACTION_PAYMENT, 'Payment'),
        (TRANSACTION_REFUND, 'Refund'),
    ]

    STATUS_APPROVED = 'approved'

    STATUS_CHOICES = [
        ('awaiting', 'Awaiting Approval'),
        (STATUS_APPROVED, 'Approved'),
        ('declined', 'Declined'),
    ]

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='payments',
        null=True,
        blank=True,
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        related_name='children',
        null=True,
        blank=True,
    )
    method = models.CharField(max_length=50)              # 'credit_card', 'paypal', 'invoice'
    transaction_type = models.CharField(max_length=20, choices=TRANSACTION_CHOICES, default=TRANSACTION_PAYMENT)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_APPROVED)
    payment_type = models.CharField(max_length=10, default='debit')   # 'debit' or 'credit'
    currency = models.CharField(max_length=3, default='EUR')
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    received_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'payments'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Payment {self.pk} ({self.transaction_type}) {self.amount} {self.currency}"


# ============================================================
# RETURN REQUEST MODEL
# ============================================================

class ReturnRequest(models.Model):
    """
    One customer return request against exactly one order.

    Customer details are captured when the return is created and never
    re-fetched, so later edits to the order or contact do not leak in.
    """

    return_number = models.CharField(max_length=50, unique=True, db_index=True)

    # Link to the original order (owned by the order service)
    order_id = models.IntegerField(db_index=True)
    contact_id = models.IntegerField(default=0, db_index=True)

    # Customer snapshot
    customer_email = models.EmailField()
    customer_name = models.CharField(max_length=200)
    customer_phone = models.CharField(max_length=30, blank=True)

    # Case data
    status = models.CharField(max_length=20, choices=ReturnStatus.choices, default=ReturnStatus.PENDING)
    return_reason = models.CharField(max_length=100)
    customer_notes = models.TextField(blank=True)
    admin_notes = models.TextField(blank=True)          # Append-only, newline-delimited
    rejection_reason = models.TextField(blank=True)

    # Financial
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)   # Customer-declared
    refund_method = models.CharField(max_length=20, choices=RefundMethod.choices, blank=True)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    refund_status = models.CharField(max_length=20, choices=RefundStatus.choices, default=RefundStatus.PENDING)
    refund_reference = models.CharField(max_length=100, blank=True)   # Payment id or credit note code

    # Shipping back
    tracking_number = models.CharField(max_length=200, blank=True)
    shipping_carrier = models.CharField(max_length=100, blank=True)

    # Timestamps - each lifecycle stamp is set once and never cleared
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'returns'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['order_id', 'contact_id', 'status']),
            models.Index(fields=['contact_id', 'created_at']),
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return f"Return {self.return_number} - order {self.order_id}"

    @staticmethod
    def generate_return_number():
        """Generate a return number like RET-1718000000-0042"""
        return f"RET-{int(time.time())}-{random.randint(0, 9999):04d}"

    @property
    def current_status(self):
        return ReturnStatus(self.status)

    def can_be_cancelled(self):
        return self.status in (ReturnStatus.PENDING, ReturnStatus.APPROVED)

    def can_be_refunded(self):
        return self.status == ReturnStatus.RECEIVED

    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def append_admin_note(self, text, label=''):
        """Append a note to admin_notes. Existing notes are never rewritten."""
        if not text:
            return
        entry = f"{label}: {text}" if label else text
        if self.admin_notes:
            self.admin_notes = f"{self.admin_notes}\n\n{entry}"
        else:
            self.admin_notes = entry


# ============================================================
# RETURN ITEM MODEL
# ============================================================

class ReturnItem(models.Model):
    """
    One order line inside a return. Created together with its return;
    afterwards only condition and notes change (receipt inspection).
    """

    return_request = models.ForeignKey(
        ReturnRequest,
        on_delete=models.CASCADE,
        related_name='items',
    )
    order_item_id = models.IntegerField()
    item_variation_id = models.IntegerField(default=0)
    item_name = models.CharField(max_length=500)
    sku = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)   # Unit price
    reason = models.CharField(max_length=255, blank=True)
    condition = models.CharField(max_length=20, choices=ItemCondition.choices, blank=True)
    notes = models.TextField(blank=True)
    images = models.JSONField(default=list, blank=True)    # Ordered image references

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'return_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity} x {self.item_name} ({self.return_request.return_number})"

    @property
    def line_total(self):
        return self.price * self.quantity


# ============================================================
# RETURN STATUS HISTORY MODEL
# ============================================================
# Every status change is recorded here (audit trail).
# This is the "Track your return" timeline.

class ReturnStatusHistory(models.Model):
    """
    Example timeline:
        2024-01-15 10:00 → pending    (Customer submitted return)
        2024-01-16 09:00 → approved   (Admin approved)
        2024-01-19 11:00 → received   (Warehouse inspected items)
        2024-01-19 15:00 → refunded   (Refund to original payment)
    """

    return_request = models.ForeignKey(
        ReturnRequest,
        on_delete=models.CASCADE,
        related_name='status_history'
    )
    from_status = models.CharField(max_length=20, blank=True)    # Empty for creation
    to_status = models.CharField(max_length=20)
    changed_by = models.CharField(max_length=100, default='system')  # 'system', 'customer', 'admin:<name>'
    comment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'return_status_history'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['return_request', 'created_at']),
        ]

    def __str__(self):
        return f"{self.return_request.return_number}: {self.from_status} → {self.to_status}"


# ============================================================
# CREDIT NOTE MODEL
# ============================================================

class CreditNote(models.Model):
    """Store credit or exchange credit issued when a return is refunded."""

    KIND_CHOICES = [
        (RefundMethod.STORE_CREDIT, 'Store Credit'),
        (RefundMethod.EXCHANGE, 'Exchange Credit'),
    ]

    return_request = models.ForeignKey(
        ReturnRequest,
        on_delete=models.CASCADE,
        related_name='credit_notes',
    )
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    code = models.CharField(max_length=32, unique=True, db_index=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    contact_id = models.IntegerField(default=0, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'credit_notes'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.code} ({self.kind}) {self.amount}"
