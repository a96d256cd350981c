"""Input normalization - raw scan payloads and form fields to canonical Transactions"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from upi_guard.domain.exceptions import ValidationError
from upi_guard.domain.models import Transaction, TransactionContext, TransactionSource
from upi_guard.domain.upi import is_payment_uri, parse_payment_uri

FALLBACK_PAYEE_IDENTIFIER = "merchant@okaxis"
UNRESOLVED_PAYEE_NAME = "Unknown Payee"

# Upper bound on any amount; accepted amounts and deviations stay finite as floats
MAX_AMOUNT = Decimal("1000000000")

# Form field aliases accepted for the payee identifier
IDENTIFIER_FIELDS = ("payee_identifier", "upi_id", "vpa")

CONTEXT_FIELDS = (
    "channel",
    "payment_gateway",
    "device_os",
    "merchant_category",
    "status",
    "city",
    "state",
)


def validate_payee_identifier(value: Any) -> str:
    """
    Check the local@domain structure of a payee identifier.

    Exactly one "@" with a non-empty part on each side. The value is
    returned unchanged so the canonical identifier equals what was entered.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError("Payee identifier is required")
    if value.count("@") != 1:
        raise ValidationError(f"Invalid UPI ID {value!r}: expected exactly one '@' (e.g. name@bank)")
    local, domain = value.split("@")
    if not local or not domain:
        raise ValidationError(f"Invalid UPI ID {value!r}: both sides of '@' must be non-empty")
    return value


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse an untrusted amount; blank means unspecified"""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")
    text = str(value).strip()
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation as e:
        raise ValidationError(f"Amount {text!r} is not a number") from e
    if not amount.is_finite():
        raise ValidationError("Amount must be finite")
    if amount < 0:
        raise ValidationError("Amount cannot be negative")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount exceeds the maximum of {MAX_AMOUNT}")
    return amount


def parse_occurred_at(value: Any, now: datetime) -> datetime:
    if value is None or value == "":
        return now
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"Timestamp {value!r} is not ISO-8601") from e
    else:
        raise ValidationError("Timestamp must be an ISO-8601 string")
    # Naive timestamps from forms are taken as UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_context(raw: Any) -> TransactionContext:
    if raw is None:
        return TransactionContext()
    if not isinstance(raw, Mapping):
        raise ValidationError("Context must be a mapping of attributes")
    values = {}
    for name in CONTEXT_FIELDS:
        value = raw.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            values[name] = text
    return TransactionContext(**values)


def _display_name(value: Any, unresolved_name: str) -> str:
    if value is None:
        return unresolved_name
    text = str(value).strip()
    return text or unresolved_name


def normalize_scan(
    payload: Any,
    now: datetime,
    fallback_identifier: str = FALLBACK_PAYEE_IDENTIFIER,
    unresolved_name: str = UNRESOLVED_PAYEE_NAME,
) -> Transaction:
    """
    Normalize one decoded QR payload.

    - upi:// intent URIs: pa/pn/am are read from the query string
    - payloads containing "@": the payload itself is the identifier
    - anything else is an opaque merchant reference; the fallback
      identifier is substituted and the record is flagged low-confidence
    """
    if not isinstance(payload, str) or not payload.strip():
        raise ValidationError("Scanned code is empty")
    payload = payload.strip()

    if is_payment_uri(payload):
        fields = parse_payment_uri(payload)
        if "pa" not in fields:
            raise ValidationError("Payment QR code carries no payee address")
        return Transaction(
            source=TransactionSource.SCANNED,
            payee_identifier=validate_payee_identifier(fields["pa"]),
            payee_name=_display_name(fields.get("pn"), unresolved_name),
            amount=parse_amount(fields.get("am")),
            occurred_at=now,
        )

    if "@" in payload:
        return Transaction(
            source=TransactionSource.SCANNED,
            payee_identifier=validate_payee_identifier(payload),
            payee_name=unresolved_name,
            amount=None,
            occurred_at=now,
        )

    return Transaction(
        source=TransactionSource.SCANNED,
        payee_identifier=fallback_identifier,
        payee_name=unresolved_name,
        amount=None,
        occurred_at=now,
        low_confidence=True,
    )


def normalize_manual(
    fields: Any,
    now: datetime,
    unresolved_name: str = UNRESOLVED_PAYEE_NAME,
) -> Transaction:
    """Normalize a manual-entry field set; types from the form are never trusted"""
    if isinstance(fields, str):
        fields = {"payee_identifier": fields}
    if not isinstance(fields, Mapping):
        raise ValidationError("Manual entry must be a set of fields")

    identifier = next((fields[name] for name in IDENTIFIER_FIELDS if fields.get(name) is not None), None)

    return Transaction(
        source=TransactionSource.MANUAL,
        payee_identifier=validate_payee_identifier(identifier),
        payee_name=_display_name(fields.get("payee_name"), unresolved_name),
        amount=parse_amount(fields.get("amount")),
        occurred_at=parse_occurred_at(fields.get("occurred_at"), now),
        context=parse_context(fields.get("context")),
    )


def normalize(
    raw: Any,
    source: TransactionSource | str,
    now: datetime | None = None,
    fallback_identifier: str = FALLBACK_PAYEE_IDENTIFIER,
    unresolved_name: str = UNRESOLVED_PAYEE_NAME,
) -> Transaction:
    """
    Turn raw scan or manual-entry input into a well-formed Transaction.

    Raises:
        ValidationError: Identifier fails the "@" structure check, or an
            amount/timestamp/context field is malformed
    """
    try:
        source = TransactionSource(source)
    except ValueError as e:
        raise ValidationError(f"Unknown input source {source!r}") from e

    if now is None:
        now = datetime.now(timezone.utc)

    if source is TransactionSource.SCANNED:
        return normalize_scan(raw, now, fallback_identifier, unresolved_name)
    return normalize_manual(raw, now, unresolved_name)
