"""
Returns Module - Customer API Views

Thin controllers: parse input with a serializer, call ReturnService, map the
ServiceResult to an HTTP response. No business rules here.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, parser_classes
from rest_framework.parsers import MultiPartParser
from rest_framework.response import Response

from .factory import build_return_service, build_validator
from .results import ErrorKind
from .serializers import (
    CheckEligibilitySerializer,
    CreateReturnRequestSerializer,
    ReturnRequestListSerializer,
    ReturnRequestSerializer,
    ReturnStatusHistorySerializer,
)

logger = logging.getLogger('returns.views')


HTTP_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.COLLABORATOR_FAILURE: status.HTTP_502_BAD_GATEWAY,
}


# ============================================================
# HELPER FUNCTIONS
# ============================================================

def result_response(result, data=None, success_status=status.HTTP_200_OK):
    """Turn a ServiceResult into a Response with the matching status code."""
    if result.ok:
        return Response(result.to_dict(data), status=success_status)
    return Response(result.to_dict(), status=HTTP_STATUS[result.error])


def invalid_input_response(serializer):
    return Response(
        {
            'success': False,
            'error': ErrorKind.VALIDATION_FAILED.value,
            'message': 'Invalid request',
            'errors': serializer.errors,
        },
        status=status.HTTP_400_BAD_REQUEST,
    )


# ============================================================
# API ENDPOINTS
# ============================================================

@api_view(['POST'])
def create_return(request):
    """
    POST /api/v1/returns/

    Create a new return request. This is called when the customer submits
    the return form. All validation errors come back in one response.
    """

    serializer = CreateReturnRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    result = build_return_service().create_return(serializer.validated_data)
    if not result.ok:
        return result_response(result)

    return result_response(
        result,
        data=ReturnRequestSerializer(result.value).data,
        success_status=status.HTTP_201_CREATED,
    )


@api_view(['POST'])
def check_eligibility(request):
    """
    POST /api/v1/returns/check-eligibility/

    Check if an order is eligible for return BEFORE creating the request.

    Request: {"order_id": 123}
    Response: {"eligible": true, "message": "...", "deadline": "...", "days_left": 3}
    """

    serializer = CheckEligibilitySerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_input_response(serializer)

    validator = build_validator()
    order = validator.gateway.find_order_by_id(serializer.validated_data['order_id'])
    result = validator.validate_order_for_return(order)

    if result['eligible']:
        result['return_period_days'] = validator.return_period_days
        result['photos_required'] = validator.photos_required
        result['returnable_items'] = [
            {
                'order_item_id': item.pk,
                'item_name': item.item_name,
                'sku': item.sku,
                'quantity': item.quantity,
                'unit_price': str(item.unit_price),
            }
            for item in validator.returnable_items(order.pk)
        ]
    return Response(result)


@api_view(['GET'])
def get_return_detail(request, return_id):
    """
    GET /api/v1/returns/{id}/

    Get full details of a specific return request.
    """

    result = build_return_service().get_return(return_id)
    if not result.ok:
        return result_response(result)
    return Response(ReturnRequestSerializer(result.value).data)


@api_view(['GET'])
def get_status_history(request, return_id):
    """
    GET /api/v1/returns/{id}/status/

    Get the status timeline for a return request.
    Used for "Track your return" feature.
    """

    service = build_return_service()
    loaded = service.get_return(return_id)
    if not loaded.ok:
        return result_response(loaded)

    history = service.get_status_history(return_id)
    if not history.ok:
        return result_response(history)

    return_request = loaded.value
    return Response({
        'return_number': return_request.return_number,
        'current_status': return_request.status,
        'current_status_label': service.get_status_label(return_request.status),
        'timeline': ReturnStatusHistorySerializer(history.value, many=True).data,
    })


@api_view(['POST'])
def cancel_return(request, return_id):
    """
    POST /api/v1/returns/{id}/cancel/

    Cancel a return request. Only pending and approved returns can be cancelled.
    """

    result = build_return_service().cancel_return(return_id, changed_by='customer')
    if not result.ok:
        return result_response(result)

    return Response({
        'success': True,
        'message': result.message,
        'return_number': result.value.return_number,
        'status': result.value.status,
    })


@api_view(['GET'])
def list_contact_returns(request, contact_id):
    """
    GET /api/v1/returns/contact/{contact_id}/

    All returns of one customer, newest first.
    """

    result = build_return_service().get_returns_for_contact(contact_id)
    if not result.ok:
        return result_response(result)
    return Response({
        'results': ReturnRequestListSerializer(result.value, many=True).data,
        'count': len(result.value),
    })


@api_view(['POST'])
@parser_classes([MultiPartParser])
def validate_image(request):
    """
    POST /api/v1/returns/validate-image/

    Pre-check a photo before the client uploads it to storage.
    multipart field: "image"
    """

    upload = request.FILES.get('image')
    if upload is None:
        return Response(
            {'valid': False, 'errors': ['No file uploaded']},
            status=status.HTTP_400_BAD_REQUEST,
        )

    errors = build_validator().validate_image(upload)
    if errors:
        return Response({'valid': False, 'errors': errors}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'valid': True, 'errors': []})


@api_view(['GET'])
def return_reasons(request):
    """
    GET /api/v1/returns/reasons/

    Selectable return reasons for the return form.
    """

    return Response({'reasons': build_return_service().get_return_reasons()})
