"""
Returns Module - Serializers

Serializers convert Python objects (Django models) to JSON and back.
    - Customer sends JSON → Serializer → validated dict → ReturnService
    - ReturnService result → Serializer → JSON response

Business rules (return window, duplicate returns, allowed reasons) live in
EligibilityValidator, not here. Input serializers only check shape, so the
service still gets to report every problem at once.
"""

from rest_framework import serializers

from .models import (
    ItemCondition,
    RefundMethod,
    ReturnItem,
    ReturnRequest,
    ReturnStatus,
    ReturnStatusHistory,
)


# ============================================================
# RETURN ITEM SERIALIZER
# ============================================================

class ReturnItemSerializer(serializers.ModelSerializer):
    """One returned order line, including the inspection outcome."""

    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = ReturnItem
        fields = [
            'id', 'order_item_id', 'item_variation_id', 'item_name', 'sku',
            'quantity', 'price', 'line_total', 'reason', 'condition',
            'notes', 'images',
        ]
        read_only_fields = fields


# ============================================================
# RETURN STATUS HISTORY SERIALIZER
# ============================================================

class ReturnStatusHistorySerializer(serializers.ModelSerializer):
    """
    Serializes status history entries.
    This is what customers see as the return timeline.
    """

    to_status_label = serializers.SerializerMethodField()

    class Meta:
        model = ReturnStatusHistory
        fields = [
            'id', 'from_status', 'to_status', 'to_status_label',
            'changed_by', 'comment', 'created_at',
        ]
        read_only_fields = fields

    def get_to_status_label(self, obj):
        try:
            return ReturnStatus(obj.to_status).label
        except ValueError:
            return obj.to_status


# ============================================================
# CREATE RETURN REQUEST SERIALIZER
# ============================================================
# This handles the INPUT when a customer submits a return

class ReturnItemInputSerializer(serializers.Serializer):
    selected = serializers.BooleanField(default=False)
    order_item_id = serializers.IntegerField(required=False)
    quantity = serializers.IntegerField(required=False)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    images = serializers.ListField(
        child=serializers.CharField(max_length=500),
        required=False,
        default=list,
    )


class CreateReturnRequestSerializer(serializers.Serializer):
    """
    Shape of the POST body when a customer submits a return:
    {
        "order_id": 123,
        "customer_email": "jane@example.com",
        "customer_name": "Jane Doe",
        "return_reason": "defective",
        "customer_notes": "Screen has dead pixels",
        "items": [
            {"selected": true, "order_item_id": 7, "quantity": 1, "reason": "Dead pixels"}
        ]
    }

    Fields are deliberately lenient (email, reason, quantities are plain
    values) - the validator produces the customer-facing error map.
    """

    order_id = serializers.IntegerField(required=False, allow_null=True, help_text="ID of the order to return")
    customer_email = serializers.CharField(required=False, allow_blank=True, max_length=254)
    customer_name = serializers.CharField(required=False, allow_blank=True, max_length=200)
    customer_phone = serializers.CharField(required=False, allow_blank=True, max_length=30)
    return_reason = serializers.CharField(required=False, allow_blank=True, max_length=100)
    customer_notes = serializers.CharField(required=False, allow_blank=True, max_length=5000)
    total_amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        required=False,
        allow_null=True,
        help_text="Amount declared by the customer; defaults to the sum of the items",
    )
    items = ReturnItemInputSerializer(many=True, required=False, default=list)


# ============================================================
# RETURN REQUEST DETAIL SERIALIZER
# ============================================================
# This handles the OUTPUT - what we send back to the customer

class ReturnRequestSerializer(serializers.ModelSerializer):
    """
    Full return request details including items and status history.

    {
        "return_number": "RET-1718000000-0042",
        "status": "approved",
        "status_label": "Approved",
        "items": [ ... ],
        "status_history": [ ... ]
    }
    """

    status_label = serializers.CharField(source='get_status_display', read_only=True)
    items = ReturnItemSerializer(many=True, read_only=True)
    status_history = ReturnStatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = ReturnRequest
        fields = [
            'id', 'return_number', 'order_id', 'contact_id',
            'customer_name', 'customer_email', 'customer_phone',
            'status', 'status_label', 'return_reason', 'customer_notes',
            'rejection_reason', 'total_amount',
            'refund_method', 'refund_amount', 'refund_status', 'refund_reference',
            'tracking_number', 'shipping_carrier',
            'items', 'status_history',
            'created_at', 'updated_at', 'approved_at', 'received_at', 'refunded_at',
        ]
        read_only_fields = fields


class AdminReturnRequestSerializer(ReturnRequestSerializer):
    """Detail view for the back office: adds internal notes."""

    class Meta(ReturnRequestSerializer.Meta):
        fields = ReturnRequestSerializer.Meta.fields + ['admin_notes']
        read_only_fields = fields


# ============================================================
# RETURN LIST SERIALIZER (lightweight - for listing APIs)
# ============================================================

class ReturnRequestListSerializer(serializers.ModelSerializer):
    """
    Lightweight serializer for listing returns.
    Doesn't include nested items/history (saves database queries).
    """

    status_label = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = ReturnRequest
        fields = [
            'id', 'return_number', 'order_id', 'customer_name',
            'customer_email', 'status', 'status_label', 'return_reason',
            'total_amount', 'refund_amount', 'created_at',
        ]


# ============================================================
# CHECK ELIGIBILITY SERIALIZER
# ============================================================

class CheckEligibilitySerializer(serializers.Serializer):
    """
    Input for checking if an order is eligible for return.

    Customer sends: {"order_id": 123}
    Response: {"eligible": true, "deadline": "2024-06-24", "days_left": 3, ...}
    """

    order_id = serializers.IntegerField(help_text="Order ID to check")


# ============================================================
# ADMIN ACTION SERIALIZERS
# ============================================================

class ApproveReturnSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default='', max_length=5000)


class RejectReturnSerializer(serializers.Serializer):
    rejection_reason = serializers.CharField(max_length=2000)
    note = serializers.CharField(required=False, allow_blank=True, default='', max_length=5000)

    def validate_rejection_reason(self, value):
        if not value.strip():
            raise serializers.ValidationError("Rejection reason is required.")
        return value.strip()


class ShipReturnSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(required=False, allow_blank=True, default='', max_length=200)
    carrier = serializers.CharField(required=False, allow_blank=True, default='', max_length=100)


class ReceiveReturnSerializer(serializers.Serializer):
    """
    {"item_conditions": {"12": "used_good", "13": {"condition": "damaged", "notes": "Cracked"}},
     "quality_notes": "Box opened"}
    """

    item_conditions = serializers.DictField(required=False, default=dict)
    quality_notes = serializers.CharField(required=False, allow_blank=True, default='', max_length=5000)

    def validate_item_conditions(self, value):
        for item_id, entry in value.items():
            if isinstance(entry, dict):
                entry = entry.get('condition')
            if entry not in ItemCondition.values:
                raise serializers.ValidationError(f"Invalid condition for item {item_id}.")
        return value


class RefundReturnSerializer(serializers.Serializer):
    # Plain string: unknown methods are reported by RefundService
    refund_method = serializers.CharField(default=RefundMethod.ORIGINAL_PAYMENT, max_length=20)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    note = serializers.CharField(required=False, allow_blank=True, default='', max_length=5000)


class CompleteReturnSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default='', max_length=5000)


class ReturnSearchSerializer(serializers.Serializer):
    """Query parameters for the admin search."""

    status = serializers.ChoiceField(choices=ReturnStatus.choices, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    search = serializers.CharField(required=False, allow_blank=True, max_length=200)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    per_page = serializers.IntegerField(required=False, min_value=1, max_value=500, default=50)

    def to_filters(self):
        data = self.validated_data
        return {
            'status': data.get('status'),
            'date_from': data.get('date_from'),
            'date_to': data.get('date_to'),
            'search_term': data.get('search') or None,
        }
