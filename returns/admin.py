"""
Returns Module - Django Admin Configuration

Internal admin panel used by the operations team to:
- View and search return requests
- Approve/reject returns in bulk
- Inspect items and the status timeline

Status changes from the admin go through ReturnService, never a raw
queryset.update(), so the transition table and history apply here too.

Access at: http://127.0.0.1:8000/admin/
"""

from django.contrib import admin, messages

from .factory import build_return_service
from .models import (
    CreditNote,
    Order,
    OrderItem,
    Payment,
    ReturnItem,
    ReturnRequest,
    ReturnStatusHistory,
)


# ============================================================
# INLINE MODELS (shown inside parent model's page)
# ============================================================

class ReturnItemInline(admin.TabularInline):
    """Show returned items inside the ReturnRequest detail page."""
    model = ReturnItem
    extra = 0
    fields = ['item_name', 'sku', 'quantity', 'price', 'reason', 'condition', 'notes', 'images']
    # Conditions are recorded by the receive action
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class ReturnStatusHistoryInline(admin.TabularInline):
    """Show status timeline inside the ReturnRequest detail page."""
    model = ReturnStatusHistory
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'changed_by', 'comment', 'created_at']
    ordering = ['-created_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


# ============================================================
# ORDER ADMIN
# ============================================================

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'customer_name', 'contact_id',
        'total_amount', 'currency', 'status', 'ordered_at',
    ]
    list_filter = ['status', 'currency']
    search_fields = ['order_number', 'customer_name', 'customer_email']
    readonly_fields = ['created_at', 'updated_at']
    list_per_page = 25
    inlines = [OrderItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'parent', 'method', 'transaction_type', 'status', 'amount', 'currency']
    list_filter = ['transaction_type', 'status', 'method']
    list_per_page = 50


# ============================================================
# RETURN REQUEST ADMIN
# ============================================================

@admin.register(ReturnRequest)
class ReturnRequestAdmin(admin.ModelAdmin):
    list_display = [
        'return_number', 'order_id', 'customer_name',
        'return_reason', 'status', 'total_amount', 'refund_amount',
        'created_at',
    ]
    list_filter = ['status', 'return_reason', 'refund_method', 'refund_status']
    search_fields = ['return_number', 'customer_name', 'customer_email']
    list_per_page = 25

    inlines = [ReturnItemInline, ReturnStatusHistoryInline]

    fieldsets = (
        ('Return Info', {
            'fields': ('return_number', 'order_id', 'status', 'return_reason', 'customer_notes')
        }),
        ('Customer Info', {
            'fields': ('contact_id', 'customer_name', 'customer_email', 'customer_phone')
        }),
        ('Review', {
            'fields': ('admin_notes', 'rejection_reason')
        }),
        ('Refund Info', {
            'fields': ('total_amount', 'refund_method', 'refund_amount', 'refund_status', 'refund_reference')
        }),
        ('Shipping Back', {
            'fields': ('tracking_number', 'shipping_carrier')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at', 'approved_at', 'received_at', 'refunded_at'),
            'classes': ('collapse',),
        }),
    )

    # Every field is owned by ReturnService / RefundService; the form only displays
    readonly_fields = [field for _, options in fieldsets for field in options['fields']]

    actions = ['approve_returns', 'reject_returns']

    def has_add_permission(self, request):
        return False

    def _run_bulk(self, request, queryset, operation, verb, **kwargs):
        changed_by = f'admin:{request.user.get_username()}'
        done, failed = 0, []
        for pk in queryset.values_list('pk', flat=True):
            result = operation(pk, changed_by=changed_by, **kwargs)
            if result.ok:
                done += 1
            else:
                failed.append(f'#{pk}: {result.message}')

        if done:
            self.message_user(request, f'{done} return(s) {verb}.')
        if failed:
            self.message_user(request, 'Skipped ' + '; '.join(failed), level=messages.WARNING)

    @admin.action(description='Approve selected returns')
    def approve_returns(self, request, queryset):
        service = build_return_service()
        self._run_bulk(request, queryset, service.approve_return, 'approved', note='Bulk approved via admin panel')

    @admin.action(description='Reject selected returns')
    def reject_returns(self, request, queryset):
        service = build_return_service()
        self._run_bulk(request, queryset, service.reject_return, 'rejected', rejection_reason='Rejected via admin panel')


@admin.register(CreditNote)
class CreditNoteAdmin(admin.ModelAdmin):
    list_display = ['code', 'kind', 'amount', 'contact_id', 'get_return_number', 'created_at']
    list_filter = ['kind']
    search_fields = ['code', 'return_request__return_number']
    readonly_fields = ['return_request', 'kind', 'code', 'amount', 'contact_id', 'created_at']

    def get_return_number(self, obj):
        return obj.return_request.return_number
    get_return_number.short_description = 'Return Number'


# ============================================================
# STATUS HISTORY ADMIN (standalone view)
# ============================================================

@admin.register(ReturnStatusHistory)
class ReturnStatusHistoryAdmin(admin.ModelAdmin):
    list_display = [
        'get_return_number', 'from_status', 'to_status',
        'changed_by', 'created_at',
    ]
    list_filter = ['to_status', 'changed_by']
    search_fields = ['return_request__return_number', 'comment']
    readonly_fields = ['return_request', 'from_status', 'to_status', 'changed_by', 'comment', 'created_at']
    list_per_page = 50

    def has_add_permission(self, request):
        return False

    def get_return_number(self, obj):
        return obj.return_request.return_number
    get_return_number.short_description = 'Return Number'
