"""
Returns Module - Back Office API Views

All URLs are prefixed with /api/v1/returns/admin/
Every status change goes through ReturnService / RefundService.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .factory import build_refund_service, build_return_service
from .serializers import (
    AdminReturnRequestSerializer,
    ApproveReturnSerializer,
    CompleteReturnSerializer,
    ReceiveReturnSerializer,
    RefundReturnSerializer,
    RejectReturnSerializer,
    ReturnRequestListSerializer,
    ReturnSearchSerializer,
    ShipReturnSerializer,
)
from .views import invalid_input_response, result_response

logger = logging.getLogger('returns.views')


def _changed_by(request):
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user.get_username()
    return 'admin'


def _detail_response(result):
    """Serialize the return carried by a successful lifecycle result."""
    if not result.ok:
        return result_response(result)
    return result_response(result, data=AdminReturnRequestSerializer(result.value).data)


# ============================================================
# SEARCH & DETAIL
# ============================================================

@api_view(['GET'])
def search_returns(request):
    """
    GET /api/v1/returns/admin/

    Query params: status, date_from, date_to, search, page, per_page
    """

    params = ReturnSearchSerializer(data=request.query_params)
    if not params.is_valid():
        return invalid_input_response(params)

    result = build_return_service().search_returns(
        params.to_filters(),
        params.validated_data['page'],
        params.validated_data['per_page'],
    )
    if not result.ok:
        return result_response(result)

    page = result.value
    return Response({
        'results': ReturnRequestListSerializer(page['data'], many=True).data,
        'total': page['total'],
        'page': page['page'],
        'per_page': page['per_page'],
        'total_pages': page['total_pages'],
    })


@api_view(['GET', 'DELETE'])
def return_detail(request, return_id):
    """
    GET    /api/v1/returns/admin/{id}/  → detail + available actions + refund check
    DELETE /api/v1/returns/admin/{id}/  → administrative delete
    """

    service = build_return_service()

    if request.method == 'DELETE':
        result = service.delete_return(return_id)
        if not result.ok:
            return result_response(result)
        logger.warning(f'Return {return_id} deleted by {_changed_by(request)}')
        return Response(status=status.HTTP_204_NO_CONTENT)

    result = service.get_return(return_id)
    if not result.ok:
        return result_response(result)

    return_request = result.value
    refunds = build_refund_service(policy=service.policy)
    data = AdminReturnRequestSerializer(return_request).data
    data['available_actions'] = service.get_available_actions(return_request)
    data['refund_check'] = refunds.can_refund(return_request)
    return Response(data)


# ============================================================
# LIFECYCLE ACTIONS
# ============================================================

@api_view(['POST'])
def approve_return(request, return_id):
    """POST /api/v1/returns/admin/{id}/approve/"""

    serializer = ApproveReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    result = build_return_service().approve_return(
        return_id,
        note=serializer.validated_data['note'],
        changed_by=_changed_by(request),
    )
    return _detail_response(result)


@api_view(['POST'])
def reject_return(request, return_id):
    """POST /api/v1/returns/admin/{id}/reject/  (rejection_reason required)"""

    serializer = RejectReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    result = build_return_service().reject_return(
        return_id,
        serializer.validated_data['rejection_reason'],
        note=serializer.validated_data['note'],
        changed_by=_changed_by(request),
    )
    return _detail_response(result)


@api_view(['POST'])
def ship_return(request, return_id):
    """POST /api/v1/returns/admin/{id}/ship/"""

    serializer = ShipReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    result = build_return_service().mark_as_shipped(
        return_id,
        tracking_number=serializer.validated_data['tracking_number'],
        carrier=serializer.validated_data['carrier'],
        changed_by=_changed_by(request),
    )
    return _detail_response(result)


@api_view(['POST'])
def receive_return(request, return_id):
    """POST /api/v1/returns/admin/{id}/receive/"""

    serializer = ReceiveReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    result = build_return_service().mark_as_received(
        return_id,
        item_conditions=serializer.validated_data['item_conditions'],
        quality_notes=serializer.validated_data['quality_notes'],
        changed_by=_changed_by(request),
    )
    return _detail_response(result)


@api_view(['POST'])
def refund_return(request, return_id):
    """
    POST /api/v1/returns/admin/{id}/refund/

    {"refund_method": "store_credit", "amount": "25.00", "note": "Goodwill"}
    Response data: {"refund_id": ..., "amount": "25.00", "method": "store_credit"}
    """

    serializer = RefundReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    data = serializer.validated_data
    result = build_refund_service().process_refund(
        return_id,
        method=data['refund_method'],
        amount=data.get('amount'),
        note=data['note'],
        changed_by=_changed_by(request),
    )
    if not result.ok:
        return result_response(result)

    return result_response(result, data={
        'refund_id': str(result.value['refund_id']),
        'amount': str(result.value['amount']),
        'method': result.value['method'],
    })


@api_view(['POST'])
def complete_return(request, return_id):
    """POST /api/v1/returns/admin/{id}/complete/"""

    serializer = CompleteReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    result = build_return_service().complete_return(
        return_id,
        note=serializer.validated_data['note'],
        changed_by=_changed_by(request),
    )
    return _detail_response(result)


# ============================================================
# REPORTING
# ============================================================

EXPORT_COLUMNS = [
    'return_number', 'order_id', 'customer_name', 'customer_email',
    'status', 'total_amount', 'created_at', 'updated_at',
]


@api_view(['GET'])
def statistics(request):
    """
    GET /api/v1/returns/admin/statistics/

    Without parameters: the basic snapshot.
    With ?detailed=1 (optionally date_from/date_to): per-status and
    per-reason counts plus average processing days.
    """

    service = build_return_service()
    if request.query_params.get('detailed') not in ('1', 'true', 'True'):
        return result_response(service.get_statistics())

    params = ReturnSearchSerializer(data=request.query_params)
    if not params.is_valid():
        return invalid_input_response(params)

    return result_response(service.get_detailed_statistics(
        params.validated_data.get('date_from'),
        params.validated_data.get('date_to'),
    ))


@api_view(['GET'])
def export_returns(request):
    """
    GET /api/v1/returns/admin/export/

    Same filters as search; returns every matching row (no pagination).
    Rendering to CSV/XLSX is left to the client.
    """

    params = ReturnSearchSerializer(data=request.query_params)
    if not params.is_valid():
        return invalid_input_response(params)

    result = build_return_service().export_returns(params.to_filters())
    if not result.ok:
        return result_response(result)

    return Response({'columns': EXPORT_COLUMNS, 'rows': result.value, 'count': len(result.value)})


@api_view(['GET'])
def available_statuses(request):
    """GET /api/v1/returns/admin/statuses/  → [{"value": ..., "label": ...}]"""

    service = build_return_service()
    return Response({'statuses': service.get_available_statuses()})
