from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Maximum price: KES 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000

_PHONE_RE = re.compile(r"^(?:\+?254|0)?([17]\d{8})$")


# =============================================================================
# MODEL PATCH VALIDATION (branch / product CRUD)
# =============================================================================


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


BRANCH_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "address", "phone", "is_headquarters", "status"}),
    required_on_create=frozenset({"name"}),
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "brand", "description", "category", "volume", "unit", "price_cents", "is_active",
    }),
    required_on_create=frozenset({"name", "brand", "price_cents"}),
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers: reject floats, bools and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not re.fullmatch(r"-?\d+", stripped):
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer", field=col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", field=col.key)

    if isinstance(coltype, DateTime):
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                dt = None
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", field=col.key)

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a string", field=col.key)
        return value.strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: Any,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}", field=k)

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank", field=k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0", field="price_cents")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}", field="price_cents")


def enforce_rules_branch(patch: dict) -> None:
    if "status" in patch and patch["status"] not in ("active", "inactive"):
        raise ValidationError("status must be active or inactive", field="status")


# =============================================================================
# FIELD HELPERS
# =============================================================================


def _require_object(raw: Any, what: str = "request body") -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"Invalid JSON payload: {what} must be an object")
    return raw


def _require_int(data: dict, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    if field not in data or data[field] is None:
        raise ValidationError(f"{field} is required", field=field)
    value = data[field]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", field=field)
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", field=field)
    return value


def _optional_int(data: dict, field: str, *, minimum: int | None = None) -> Optional[int]:
    if data.get(field) is None:
        return None
    return _require_int(data, field, minimum=minimum)


def _require_str(data: dict, field: str, *, max_length: int = 255) -> str:
    value = data.get(field)
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    if not value:
        raise ValidationError(f"{field} cannot be blank", field=field)
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field=field)
    return value


def _optional_str(data: dict, field: str, *, max_length: int = 255) -> Optional[str]:
    if data.get(field) is None:
        return None
    value = data[field]
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field=field)
    return value or None


def _require_list(data: dict, field: str) -> list:
    value = data.get(field)
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list", field=field)
    return value


def normalize_phone(value: Any, field: str = "phone") -> str:
    """
    Normalize a Kenyan mobile number to the 2547XXXXXXXX / 2541XXXXXXXX
    form the gateway expects. Accepts 07..., +2547..., 2547... and 7...
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    compact = re.sub(r"[\s\-()]", "", value)
    match = _PHONE_RE.match(compact)
    if not match:
        raise ValidationError(f"{field} is not a valid Kenyan mobile number", field=field)
    return "254" + match.group(1)


# =============================================================================
# REQUEST TYPES
# =============================================================================


@dataclass(frozen=True)
class LineItemRequest:
    product_id: int
    quantity: int
    price_cents: Optional[int] = None


@dataclass(frozen=True)
class CreateSaleRequest:
    branch_id: int
    items: tuple[LineItemRequest, ...]
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class CreateOrderRequest:
    branch_id: int
    items: tuple[LineItemRequest, ...]
    phone: str


@dataclass(frozen=True)
class RestockItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class RestockRequest:
    branch_id: int
    product_id: int
    quantity: int


@dataclass(frozen=True)
class BulkRestockRequest:
    branch_id: int
    items: tuple[RestockItem, ...]


@dataclass(frozen=True)
class SetQuantityRequest:
    branch_id: int
    product_id: int
    quantity: int
    note: Optional[str] = None


@dataclass(frozen=True)
class SyncPaymentInfo:
    method: Optional[str]
    reference: Optional[str]
    phone: Optional[str]
    status: Optional[str]


@dataclass(frozen=True)
class SyncSaleRecord:
    client_txn_id: str
    branch_id: int
    items: tuple[LineItemRequest, ...]
    total_cents: int
    created_at: Optional[datetime] = None
    payment_info: Optional[SyncPaymentInfo] = None


@dataclass(frozen=True)
class SyncBatchRequest:
    client_id: str
    sales: tuple[Any, ...]


@dataclass(frozen=True)
class InitiatePaymentRequest:
    order_id: int
    phone: Optional[str] = None


@dataclass(frozen=True)
class RegisterRequest:
    name: str
    email: str
    phone: str
    password: str


@dataclass(frozen=True)
class LoginRequest:
    email: str
    password: str


# =============================================================================
# PARSERS (raw JSON -> request type, or ValidationError)
# =============================================================================


def _parse_line_items(raw_items: list, *, price_required: bool) -> tuple[LineItemRequest, ...]:
    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", field="items")
        try:
            product_id = _require_int(raw, "product_id", minimum=1)
            quantity = _require_int(raw, "quantity", minimum=1, maximum=MAX_LINE_QUANTITY)
            if price_required:
                price = _require_int(raw, "price_cents", minimum=0, maximum=MAX_PRICE_CENTS)
            else:
                price = _optional_int(raw, "price_cents", minimum=0)
        except ValidationError as e:
            raise ValidationError(f"items[{index}]: {e.message}", details={**e.details, "index": index})
        items.append(LineItemRequest(product_id=product_id, quantity=quantity, price_cents=price))
    return tuple(items)


def parse_create_sale(raw: Any) -> CreateSaleRequest:
    data = _require_object(raw)
    return CreateSaleRequest(
        branch_id=_require_int(data, "branch_id", minimum=1),
        items=_parse_line_items(_require_list(data, "items"), price_required=False),
        payment_method=_optional_str(data, "payment_method", max_length=32),
    )


def parse_create_order(raw: Any) -> CreateOrderRequest:
    data = _require_object(raw)
    return CreateOrderRequest(
        branch_id=_require_int(data, "branch_id", minimum=1),
        items=_parse_line_items(_require_list(data, "items"), price_required=False),
        phone=normalize_phone(_require_str(data, "phone", max_length=20)),
    )


def parse_restock(raw: Any) -> RestockRequest:
    data = _require_object(raw)
    return RestockRequest(
        branch_id=_require_int(data, "branch_id", minimum=1),
        product_id=_require_int(data, "product_id", minimum=1),
        quantity=_require_int(data, "quantity", minimum=1, maximum=MAX_LINE_QUANTITY),
    )


def parse_bulk_restock(raw: Any) -> BulkRestockRequest:
    data = _require_object(raw)
    branch_id = _require_int(data, "branch_id", minimum=1)
    items = []
    for index, item in enumerate(_require_list(data, "items")):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object", field="items")
        try:
            items.append(RestockItem(
                product_id=_require_int(item, "product_id", minimum=1),
                quantity=_require_int(item, "quantity", minimum=1, maximum=MAX_LINE_QUANTITY),
            ))
        except ValidationError as e:
            raise ValidationError(f"items[{index}]: {e.message}", details={**e.details, "index": index})
    return BulkRestockRequest(branch_id=branch_id, items=tuple(items))


def parse_set_quantity(raw: Any) -> SetQuantityRequest:
    data = _require_object(raw)
    return SetQuantityRequest(
        branch_id=_require_int(data, "branch_id", minimum=1),
        product_id=_require_int(data, "product_id", minimum=1),
        quantity=_require_int(data, "quantity", minimum=0),
        note=_optional_str(data, "reason"),
    )


def parse_sync_batch(raw: Any) -> SyncBatchRequest:
    data = _require_object(raw)
    client_id = _require_str(data, "client_id", max_length=100)
    sales = data.get("sales")
    if not isinstance(sales, list):
        raise ValidationError("sales must be a list", field="sales")
    return SyncBatchRequest(client_id=client_id, sales=tuple(sales))


def _parse_payment_info(raw: Any) -> Optional[SyncPaymentInfo]:
    if raw is None:
        return None
    data = _require_object(raw, "payment_info")
    return SyncPaymentInfo(
        method=_optional_str(data, "method", max_length=32),
        reference=_optional_str(data, "reference", max_length=100),
        phone=_optional_str(data, "phone", max_length=20),
        status=_optional_str(data, "status", max_length=16),
    )


def parse_sync_record(raw: Any) -> SyncSaleRecord:
    data = _require_object(raw, "sale record")
    created_at = None
    if data.get("created_at") is not None:
        if not isinstance(data["created_at"], str):
            raise ValidationError("created_at must be an ISO-8601 string", field="created_at")
        try:
            created_at = parse_iso_datetime(data["created_at"])
        except ValueError:
            raise ValidationError("created_at must be an ISO-8601 string", field="created_at")

    return SyncSaleRecord(
        client_txn_id=_require_str(data, "client_txn_id", max_length=100),
        branch_id=_require_int(data, "branch_id", minimum=1),
        items=_parse_line_items(_require_list(data, "items"), price_required=True),
        total_cents=_require_int(data, "total_cents", minimum=0),
        created_at=created_at,
        payment_info=_parse_payment_info(data.get("payment_info")),
    )


def parse_initiate_payment(raw: Any) -> InitiatePaymentRequest:
    data = _require_object(raw)
    phone = data.get("phone")
    return InitiatePaymentRequest(
        order_id=_require_int(data, "order_id", minimum=1),
        phone=normalize_phone(phone) if phone is not None else None,
    )


def parse_status(raw: Any, allowed: tuple[str, ...], field: str = "status") -> str:
    data = _require_object(raw)
    value = _require_str(data, field, max_length=32)
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}", field=field)
    return value


def parse_register(raw: Any) -> RegisterRequest:
    data = _require_object(raw)
    name = _require_str(data, "name", max_length=120)
    email = _require_str(data, "email", max_length=255).lower()
    if not re.fullmatch(r"[^@\s]+@[^@\s]+\.[^@\s]+", email):
        raise ValidationError("email is not valid", field="email")
    phone = normalize_phone(_require_str(data, "phone", max_length=20))
    password = data.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required", field="password")
    if data.get("confirm_password") != password:
        raise ValidationError("Passwords do not match", field="confirm_password")
    return RegisterRequest(name=name, email=email, phone=phone, password=password)


def parse_login(raw: Any) -> LoginRequest:
    data = _require_object(raw)
    email = _require_str(data, "email", max_length=255).lower()
    password = data.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required", field="password")
    return LoginRequest(email=email, password=password)


def parse_threshold(value: Optional[str], default: int) -> int:
    """Query-string threshold: positive integers only, anything else falls back to default."""
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default
