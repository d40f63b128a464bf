"""Typed errors raised by the KPI aggregation engine.

Every error carries a machine-readable ``code`` so the HTTP layer can map it
without parsing messages::

    KPIError
    ├── ValidationError
    │   ├── InvalidAmountError
    │   ├── InvalidDateError
    │   ├── InvalidStatusError
    │   └── InvalidPlanTierError
    ├── UnassignedPropertyError
    └── TransientStoreError
"""

import uuid
from typing import Any


class KPIError(Exception):
    """Base class for KPI engine errors."""

    code: str = "kpi_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(KPIError):
    """Malformed event input. Raised before any KPI row is touched."""

    code = "validation_error"


class InvalidAmountError(ValidationError):
    code = "invalid_amount"

    def __init__(self, amount: Any) -> None:
        super().__init__(f"amount_cents must be a non-zero integer, got {amount!r}")
        self.amount = amount


class InvalidDateError(ValidationError):
    code = "invalid_date"

    def __init__(self, message: str, value: Any = None) -> None:
        super().__init__(message)
        self.value = value


class InvalidStatusError(ValidationError):
    code = "invalid_status"

    def __init__(self, status: Any) -> None:
        super().__init__(f"status must be one of upcoming, completed, cancelled; got {status!r}")
        self.status = status


class InvalidPlanTierError(ValidationError):
    code = "invalid_plan_tier"

    def __init__(self, tier: Any) -> None:
        super().__init__(f"tier must be one of launch, elevate, maximize; got {tier!r}")
        self.tier = tier


class UnassignedPropertyError(KPIError):
    """A ledger entry's property has no manager to attribute it to."""

    code = "unassigned_property"

    def __init__(self, property_id: uuid.UUID) -> None:
        super().__init__(f"Property {property_id} has no assigned manager")
        self.property_id = property_id


class TransientStoreError(KPIError):
    """The KPI row stayed locked or contended past the retry budget.

    No partial mutation was committed; the whole operation may be retried.
    """

    code = "kpi_store_busy"

    def __init__(self, key: Any, attempts: int) -> None:
        super().__init__(f"KPI row {key} is busy after {attempts} attempt(s)")
        self.key = key
        self.attempts = attempts
