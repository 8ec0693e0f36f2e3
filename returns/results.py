"""
Returns Module - Service Results

Every public service operation returns a ServiceResult instead of raising.
Callers branch on `error` (an ErrorKind), never on message text.

    >>> result = service.approve_return(42, note='Looks fine')
    >>> if result.ok:
    ...     return Response(serialize(result.value))
    >>> return Response(result.to_dict(), status=HTTP_STATUS[result.error])
"""

import logging
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Generic, Optional, TypeVar

T = TypeVar('T')

logger = logging.getLogger('returns.services')


class ErrorKind(str, Enum):
    NOT_FOUND = 'not_found'                        # return or order absent
    VALIDATION_FAILED = 'validation_failed'        # field-keyed errors, nothing mutated
    ILLEGAL_TRANSITION = 'illegal_transition'      # current status forbids the action
    COLLABORATOR_FAILURE = 'collaborator_failure'  # store/gateway/issuer raised


@dataclass
class ServiceResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ''
    errors: Optional[dict] = None

    def to_dict(self, data: Any = None) -> dict:
        """
        Dictionary for JSON responses. `data` replaces the raw value,
        e.g. with its serialized form.
        """
        if self.ok:
            return {
                'success': True,
                'message': self.message,
                'data': self.value if data is None else data,
            }
        payload = {
            'success': False,
            'error': self.error.value,
            'message': self.message,
        }
        if self.errors:
            payload['errors'] = self.errors
        return payload


def service_ok(value: Any = None, message: str = '') -> ServiceResult:
    return ServiceResult(ok=True, value=value, message=message)


def service_err(kind: ErrorKind, message: str, errors: Optional[dict] = None) -> ServiceResult:
    return ServiceResult(ok=False, error=kind, message=message, errors=errors)


# ============================================================
# INTERNAL EXCEPTIONS
# ============================================================
# Raised inside service methods (usually while a return is locked, so the
# transaction rolls back) and turned into results by service_operation.

class NotFoundError(Exception):
    pass


class ValidationFailedError(Exception):

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or {}


class IllegalTransitionError(Exception):
    pass


class CollaboratorError(Exception):
    """A store, gateway or issuer call failed or returned something unusable."""


def service_operation(description: str):
    """
    Decorator for public service methods.

    NotFoundError, ValidationFailedError, IllegalTransitionError and
    CollaboratorError become results of the matching kind, keeping their
    message. Any other exception is logged and turned
    into a COLLABORATOR_FAILURE result, so HTTP controllers, admin actions
    and Celery tasks never see a raw exception from the engine.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except NotFoundError as exc:
                logger.warning(f'{description}: {exc}')
                return service_err(ErrorKind.NOT_FOUND, str(exc))
            except ValidationFailedError as exc:
                logger.warning(f'{description}: validation failed {exc.errors}')
                return service_err(ErrorKind.VALIDATION_FAILED, str(exc), exc.errors)
            except IllegalTransitionError as exc:
                logger.warning(f'{description}: {exc}')
                return service_err(ErrorKind.ILLEGAL_TRANSITION, str(exc))
            except CollaboratorError as exc:
                logger.error(f'{description}: {exc}', exc_info=True)
                return service_err(ErrorKind.COLLABORATOR_FAILURE, str(exc))
            except Exception as exc:
                logger.error(
                    f'Error {description}: {exc} (args={args!r})',
                    exc_info=True,
                )
                return service_err(ErrorKind.COLLABORATOR_FAILURE, f'Error {description}: {exc}')

        return wrapper

    return decorator
