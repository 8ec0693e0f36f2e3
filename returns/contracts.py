"""
Returns Module - Collaborator Contracts

The return engine (validation, lifecycle, refunds) only talks to the outside
world through these interfaces. Django ORM implementations live in
repositories.py and notifications.py; tests can swap in fakes or mocks.
"""

from abc import ABC, abstractmethod
from enum import Enum


class ReturnStore(ABC):
    """Persistence for ReturnRequest, ReturnItem and the status history."""

    @abstractmethod
    def find_by_id(self, return_id):
        """Return the ReturnRequest or None."""

    @abstractmethod
    def find_by_id_with_items(self, return_id):
        """Return the ReturnRequest with its items prefetched, or None."""

    @abstractmethod
    def find_by_return_number(self, return_number):
        pass

    @abstractmethod
    def find_by_contact(self, contact_id):
        """All returns of a contact, newest first."""

    @abstractmethod
    def has_active_return(self, order_id, contact_id):
        """True if a return outside {rejected, cancelled} exists for the order."""

    @abstractmethod
    def search(self, filters, page=1, per_page=50):
        """
        filters: status, date_from, date_to, search_term (all optional)
        Returns {data, total, page, per_page, total_pages}.
        """

    @abstractmethod
    def create(self, data, items):
        """
        Persist a new pending return and its items in one unit of work.
        Raises DuplicateReturnError if the order already has an active return.
        """

    @abstractmethod
    def update(self, return_request):
        pass

    @abstractmethod
    def delete(self, return_id):
        """Delete a return and its items. Returns False if it did not exist."""

    @abstractmethod
    def locked(self, return_id):
        """
        Context manager yielding the ReturnRequest (or None) under an
        exclusive read-modify-write lock for the duration of the block.
        """

    @abstractmethod
    def get_items(self, return_id):
        pass

    @abstractmethod
    def update_item(self, item):
        pass

    @abstractmethod
    def add_status_history(self, return_request, from_status, to_status, changed_by='system', comment=''):
        pass

    @abstractmethod
    def get_status_history(self, return_id):
        pass

    @abstractmethod
    def count_by_status(self, status=None, date_from=None, date_to=None):
        """Count returns, optionally restricted to one status and a date range."""

    @abstractmethod
    def total_refunded(self, date_from=None, date_to=None):
        """Sum of refund_amount over refunded and completed returns."""

    @abstractmethod
    def count_by_reason(self, date_from=None, date_to=None):
        """{return_reason: count}"""

    @abstractmethod
    def refunded_durations(self, date_from=None, date_to=None):
        """(created_at, refunded_at) pairs for refunded returns."""


class DuplicateReturnError(Exception):
    """Raised by ReturnStore.create when the order already has an active return."""


class OrderGateway(ABC):
    """Read orders and write refund payments in the shop's order service."""

    @abstractmethod
    def find_order_by_id(self, order_id):
        """Return the order or None."""

    @abstractmethod
    def get_order_items(self, order_id):
        pass

    @abstractmethod
    def get_payments(self, order_id):
        """Payments recorded on the order, oldest first."""

    @abstractmethod
    def create_payment(self, data):
        """Create a payment from a dict and return it (must expose `.pk`)."""

    @abstractmethod
    def link_payment_to_order(self, payment_id, order_id):
        pass


class CreditIssuer(ABC):
    """Voucher/credit system used by the store-credit and exchange refunds."""

    @abstractmethod
    def issue_store_credit(self, return_request, amount):
        """Return an opaque reference for the issued credit."""

    @abstractmethod
    def issue_exchange(self, return_request, amount):
        """Return an opaque reference for the exchange credit/order."""


class NotificationKind(str, Enum):
    CREATED = 'created'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    RECEIVED = 'received'
    REFUND_PROCESSED = 'refund-processed'


class NotificationSink(ABC):
    """
    Receives notification intents. Composing and delivering the message is
    entirely the sink's business; the engine only decides that one is due.
    """

    @abstractmethod
    def notify(self, kind, return_request, extra=None):
        pass
