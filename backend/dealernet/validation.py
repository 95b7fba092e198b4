from __future__ import annotations
from datetime import datetime
from dealernet.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text, DateTime

from .models import Payment
from .models.payments import PAYMENT_METHODS, PAYMENT_TYPES, RECONCILIATION_STATUSES
from .models.tenancy import USER_STATUS_ACTIVE, USER_STATUS_INACTIVE
from .roles import ROLES


# Maximum single payment: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

REASON_MIN_LENGTH = 3
REASON_MAX_LENGTH = 500

MAX_PAGE_LIMIT = 100

# Statuses the governance update may set; "removed" only through removal
GOVERNABLE_STATUSES = (USER_STATUS_ACTIVE, USER_STATUS_INACTIVE)


class ValidationError(ValueError):
    """400-level input problem."""


def json_object(payload) -> dict:
    """Request body as a dict; a missing body is empty, any other JSON value is rejected."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - aliases: payload key -> mapped attribute (e.g. "metadata" -> "metadata_json")
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    aliases: dict[str, str] | None = None


def _columns_by_key(model) -> dict[str, Any]:
    # Keyed by mapped attribute name, which can differ from the column name
    return dict(model.__mapper__.columns.items())


def _coerce_value(key: str, col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{key} must be an integer, not a decimal")
        raise ValidationError(f"{key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{key} must be a datetime")

    if isinstance(coltype, JSON):
        if not isinstance(value, dict):
            raise ValidationError(f"{key} must be an object")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{key} must be a string")
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by mapped attribute names.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    aliases = policy.aliases or {}

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if aliases.get(k, k) not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        attr = aliases.get(k, k)
        col = cols[attr]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[attr] = None
            continue

        val = _coerce_value(k, col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[attr] = val

    return patch


# =============================================================================
# PAYMENTS
# =============================================================================

PAYMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "transaction_id",
        "order_id",
        "invoice_id",
        "customer_id",
        "amount_cents",
        "payment_method",
        "payment_type",
        "payment_date",
        "external_reference_id",
        "notes",
        "metadata",
    },
    required_on_create={
        "transaction_id",
        "amount_cents",
        "payment_method",
        "payment_type",
        "payment_date",
    },
    aliases={"metadata": "metadata_json"},
)


def enforce_rules_payment(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "amount_cents" in patch:
        amount = patch["amount_cents"]
        if amount is None or amount <= 0:
            raise ValidationError("amount_cents must be > 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"amount_cents cannot exceed {MAX_AMOUNT_CENTS}")

    if "payment_method" in patch and patch["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    if "payment_type" in patch and patch["payment_type"] not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")


def clean_payment_create(payload: dict) -> dict:
    patch = validate_payload(model=Payment, payload=payload, policy=PAYMENT_POLICY, partial=False)
    enforce_rules_payment(patch)
    return patch


def clean_payment_patch(payload: dict) -> dict:
    patch = validate_payload(model=Payment, payload=payload, policy=PAYMENT_POLICY, partial=True)
    enforce_rules_payment(patch)
    return patch


def clean_reconciliation_status(value) -> str:
    if value not in RECONCILIATION_STATUSES:
        raise ValidationError(
            f"reconciliation_status must be one of: {', '.join(RECONCILIATION_STATUSES)}"
        )
    return value


def clean_optional_text(key: str, value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() or None


@dataclass(frozen=True)
class PaymentFilters:
    order_id: int | None = None
    invoice_id: int | None = None
    customer_id: str | None = None
    payment_method: str | None = None
    reconciliation_status: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def _query_int(args, key: str, default: int | None = None, minimum: int | None = None, maximum: int | None = None):
    raw = args.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}")
    return value


def _query_datetime(args, key: str) -> datetime | None:
    raw = args.get(key)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def parse_payment_query(args) -> tuple[PaymentFilters, int, int]:
    """Parse list filters from a query-string mapping. Returns (filters, page, limit)."""
    method = args.get("payment_method") or None
    if method is not None and method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    status = args.get("reconciliation_status") or None
    if status is not None:
        clean_reconciliation_status(status)

    filters = PaymentFilters(
        order_id=_query_int(args, "order_id"),
        invoice_id=_query_int(args, "invoice_id"),
        customer_id=args.get("customer_id") or None,
        payment_method=method,
        reconciliation_status=status,
        start_date=_query_datetime(args, "start_date"),
        end_date=_query_datetime(args, "end_date"),
    )
    page = _query_int(args, "page", default=1, minimum=1)
    limit = _query_int(args, "limit", default=20, minimum=1, maximum=MAX_PAGE_LIMIT)
    return filters, page, limit


# =============================================================================
# USER GOVERNANCE
# =============================================================================

def clean_reason(value) -> str:
    if not isinstance(value, str):
        raise ValidationError("reason is required")
    reason = value.strip()
    if len(reason) < REASON_MIN_LENGTH or len(reason) > REASON_MAX_LENGTH:
        raise ValidationError(
            f"reason must be between {REASON_MIN_LENGTH} and {REASON_MAX_LENGTH} characters"
        )
    return reason


def clean_governance_update(role, status, reason) -> tuple[str, str, str]:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if status not in GOVERNABLE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(GOVERNABLE_STATUSES)}")
    return role, status, clean_reason(reason)
