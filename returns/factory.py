"""
Returns Module - Service Wiring

Views, admin actions and tasks get their services from here so that every
entry point uses the same adapters and the same policy.
"""

from .notifications import CeleryNotificationSink
from .policy import ReturnPolicy
from .refunds import RefundService
from .repositories import DjangoCreditIssuer, DjangoOrderGateway, DjangoReturnStore
from .services import ReturnService
from .validation import EligibilityValidator


def build_validator(policy=None, store=None, gateway=None):
    return EligibilityValidator(
        store or DjangoReturnStore(),
        gateway or DjangoOrderGateway(),
        policy or ReturnPolicy.from_settings(),
    )


def build_return_service(policy=None, sink=None):
    policy = policy or ReturnPolicy.from_settings()
    store = DjangoReturnStore()
    gateway = DjangoOrderGateway()
    return ReturnService(
        store=store,
        gateway=gateway,
        sink=sink or CeleryNotificationSink(),
        policy=policy,
        validator=build_validator(policy, store, gateway),
    )


def build_refund_service(policy=None, sink=None):
    return RefundService(
        store=DjangoReturnStore(),
        gateway=DjangoOrderGateway(),
        credit_issuer=DjangoCreditIssuer(),
        sink=sink or CeleryNotificationSink(),
        policy=policy or ReturnPolicy.from_settings(),
    )
