"""UPI payment URI helpers (upi://pay?pa=...&pn=...&am=...)"""

from typing import Dict
from urllib.parse import parse_qs, urlencode, urlsplit

from upi_guard.domain.models import Transaction

UPI_SCHEME = "upi"
DEFAULT_CURRENCY = "INR"


def is_payment_uri(payload: str) -> bool:
    return payload.lower().startswith(f"{UPI_SCHEME}://")


def parse_payment_uri(payload: str) -> Dict[str, str]:
    """
    Extract the payment fields from a UPI intent URI.

    Only the first value of each query parameter is kept; keys are
    lower-cased (some issuers emit PA/PN).

    Example:
        upi://pay?pa=shop@okaxis&pn=Corner%20Shop&am=250.00
        → {"pa": "shop@okaxis", "pn": "Corner Shop", "am": "250.00"}
    """
    query = urlsplit(payload).query
    return {key.lower(): values[0] for key, values in parse_qs(query).items() if values}


def build_payment_uri(transaction: Transaction, currency: str = DEFAULT_CURRENCY) -> str:
    """Render the intent URI handed to the user's UPI app once payment is allowed"""
    params = {"pa": transaction.payee_identifier, "pn": transaction.payee_name}
    if transaction.amount is not None:
        params["am"] = f"{transaction.amount:.2f}"
    params["cu"] = currency
    return f"{UPI_SCHEME}://pay?{urlencode(params)}"
