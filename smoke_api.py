"""
Walk one return through the whole lifecycle against a running server.

    python manage.py runserver
    python smoke_api.py <order_id> [refund_method]

The order must be shipped/delivered, inside the return window and have at
least one physical line.
"""

import sys

import requests

BASE = 'http://127.0.0.1:8000/api/v1/returns'


def check(response):
    body = response.json()
    if response.status_code >= 400:
        sys.exit(f"FAILED ({response.status_code}): {body.get('message')} {body.get('errors', '')}")
    return body


def main(order_id, refund_method='original_payment'):
    # Step 1: Eligibility + returnable lines
    data = check(requests.post(f'{BASE}/check-eligibility/', json={'order_id': order_id}))
    print(f"STEP 1 - Eligible: {data['eligible']} | {data['message']}")
    if not data['eligible']:
        return

    # Step 2: Create return for every returnable line
    r = requests.post(f'{BASE}/', json={
        'order_id': order_id,
        'customer_email': 'smoke@example.com',
        'customer_name': 'Smoke Test',
        'return_reason': 'size_issue',
        'customer_notes': 'Shoes are too tight',
        'items': [
            {'selected': True, 'order_item_id': item['order_item_id'], 'quantity': item['quantity'], 'reason': 'Too small'}
            for item in data['returnable_items']
        ],
    })
    created = check(r)['data']
    return_id = created['id']
    print(f"STEP 2 - Created: {created['return_number']} | Status: {created['status']} | Amount: {created['total_amount']}")

    admin = f'{BASE}/admin/{return_id}'

    # Step 3-5: Approve, ship back, receive
    print(f"STEP 3 - {check(requests.post(f'{admin}/approve/', json={'note': 'Smoke test'}))['data']['status']}")
    shipped = check(requests.post(f'{admin}/ship/', json={'tracking_number': 'DEL987654321', 'carrier': 'DHL'}))
    print(f"STEP 4 - {shipped['data']['status']}")
    print(f"STEP 5 - {check(requests.post(f'{admin}/receive/', json={'quality_notes': 'All good'}))['data']['status']}")

    # Step 6: Refund
    refund = check(requests.post(f'{admin}/refund/', json={'refund_method': refund_method}))['data']
    print(f"STEP 6 - Refunded {refund['amount']} via {refund['method']} (ref {refund['refund_id']})")

    # Step 7: Full timeline
    data = check(requests.get(f'{BASE}/{return_id}/status/'))
    print(f"\nFULL TIMELINE for {data['return_number']}:")
    print("-" * 80)
    for entry in data['timeline']:
        fr = entry['from_status'] or 'NEW'
        print(f"  {entry['created_at']} | {fr:12s} -> {entry['to_status']:12s} | {entry['changed_by']}")


if __name__ == '__main__':
    if len(sys.argv) < 2:
        sys.exit(__doc__)
    main(int(sys.argv[1]), *sys.argv[2:3])
