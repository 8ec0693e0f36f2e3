"""
Returns Module - Policy Configuration

All store-wide return settings in one immutable object. Services receive it
at construction instead of reading django.conf.settings on their own.
"""

from dataclasses import dataclass, field, fields

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


DEFAULT_RETURN_REASONS = (
    'defective',
    'wrong_item',
    'not_as_described',
    'size_issue',
    'changed_mind',
    'other',
)

DEFAULT_IMAGE_TYPES = (
    'image/jpeg',
    'image/jpg',
    'image/png',
    'image/gif',
    'image/webp',
)


@dataclass(frozen=True)
class ReturnPolicy:
    return_period_days: int = 14
    send_notifications: bool = True
    require_photos: bool = False
    return_reasons: tuple = DEFAULT_RETURN_REASONS
    # Order statuses meaning "goods handed to the carrier or delivered"
    completed_order_statuses: frozenset = field(default_factory=lambda: frozenset({'shipped', 'delivered'}))
    max_image_size: int = 5 * 1024 * 1024
    allowed_image_types: tuple = DEFAULT_IMAGE_TYPES

    def __post_init__(self):
        if self.return_period_days < 0:
            raise ImproperlyConfigured('RETURN_PERIOD_DAYS must not be negative')
        # Accept lists from settings but keep the object hashable/immutable
        object.__setattr__(self, 'return_reasons', tuple(self.return_reasons))
        object.__setattr__(self, 'completed_order_statuses', frozenset(self.completed_order_statuses))
        object.__setattr__(self, 'allowed_image_types', tuple(self.allowed_image_types))

    @classmethod
    def from_settings(cls, overrides=None):
        """
        Build the policy from settings.RETURN_POLICY.

        Keys are the upper-case field names (RETURN_PERIOD_DAYS, ...).
        Anything else is a typo waiting to be ignored, so it is rejected.
        """
        raw = dict(getattr(settings, 'RETURN_POLICY', {}))
        if overrides:
            raw.update(overrides)

        known = {f.name.upper(): f.name for f in fields(cls)}
        unknown = sorted(set(raw) - set(known))
        if unknown:
            raise ImproperlyConfigured(f"Unknown RETURN_POLICY option(s): {', '.join(unknown)}")

        return cls(**{known[key]: value for key, value in raw.items()})
