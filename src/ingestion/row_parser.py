"""
Sales Row Parser

Maps header-driven CSV records onto typed sales rows.

Headers are matched case- and whitespace-insensitively against a list of
synonyms per logical field. Numeric fields are parsed locale-invariantly
and fall back to defaults instead of failing the row; only a missing order
or product identifier makes a row unusable.
"""

import re
import warnings
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import pandas as pd

# Logical field -> accepted header spellings, in priority order
FIELD_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "order_id": ("Order ID", "OrderID", "OrderId"),
    "product_id": ("Product ID", "ProductID", "ProductId"),
    "customer_id": ("Customer ID", "CustomerID", "CustomerId"),
    "product_name": ("Product Name", "ProductName"),
    "category": ("Category",),
    "region": ("Region",),
    "date_of_sale": ("Date of Sale", "DateOfSale"),
    "quantity": ("Quantity Sold", "Quantity"),
    "unit_price": ("Unit Price", "UnitPrice"),
    "discount": ("Discount",),
    "shipping_cost": ("Shipping Cost", "ShippingCost"),
    "payment_method": ("Payment Method", "PaymentMethod"),
    "customer_name": ("Customer Name", "CustomerName"),
    "customer_email": ("Customer Email", "CustomerEmail"),
    "customer_address": ("Customer Address", "CustomerAddress"),
}

DEFAULT_QUANTITY = 1
DEFAULT_AMOUNT = Decimal("0")

# Storage limits of the order tables: Integer quantity, (precision, scale) amounts
INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
MONEY_COLUMN = (12, 2)
FRACTION_COLUMN = (6, 4)

_INT_RE = re.compile(r"^[+-]?\d+$")
_DECIMAL_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class ParsedRow:
    """A source line that can be ingested"""
    line_number: int
    order_code: str
    product_code: str
    customer_code: Optional[str] = None
    product_name: Optional[str] = None
    category: Optional[str] = None
    region: Optional[str] = None
    date_of_sale: Optional[datetime] = None
    quantity: int = DEFAULT_QUANTITY
    unit_price: Decimal = DEFAULT_AMOUNT
    discount: Decimal = DEFAULT_AMOUNT
    shipping_cost: Decimal = DEFAULT_AMOUNT
    payment_method: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None


@dataclass(frozen=True)
class RowSkip:
    """A source line that was skipped, with the reason"""
    line_number: int
    reason: str


RowResult = Union[ParsedRow, RowSkip]


def _normalize_header(header: Any) -> str:
    return "".join(str(header).split()).lower()


def resolve_columns(headers: Iterable[Any]) -> Dict[str, str]:
    """
    Map logical field names to the headers present in a file.

    Fields with no matching header are left out of the mapping.
    """
    by_normalized: Dict[str, str] = {}
    for header in headers:
        by_normalized.setdefault(_normalize_header(header), header)

    columns = {}
    for logical, synonyms in FIELD_SYNONYMS.items():
        for synonym in synonyms:
            actual = by_normalized.get(_normalize_header(synonym))
            if actual is not None:
                columns[logical] = actual
                break
    return columns


def clean_text(value: Any) -> Optional[str]:
    """Trimmed string, or None for blanks and non-string cells"""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_int(value: Any, default: int) -> int:
    """Parse a 32-bit integer, returning ``default`` when unparseable or out of range"""
    text = clean_text(value)
    if text is None or not _INT_RE.match(text):
        return default
    number = int(text)
    if not INT32_MIN <= number <= INT32_MAX:
        return default
    return number


def parse_decimal(value: Any, default: Decimal, column: Optional[Tuple[int, int]] = None) -> Decimal:
    """
    Parse a fixed-point number independent of locale.

    Accepts thousands separators and accounting-style negatives, e.g.
    "1,234.50" and "(5.00)". Anything else that is not a finite number
    yields ``default``.

    Args:
        value: Raw cell
        default: Fallback value
        column: (precision, scale) of the target column; the number is
            rounded half-up to ``scale`` places and yields ``default`` when
            it does not fit
    """
    text = clean_text(value)
    if text is None:
        return default

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1].strip()
    text = text.replace(",", "")

    if not _DECIMAL_RE.match(text):
        return default
    try:
        number = Decimal(text)
    except InvalidOperation:
        return default
    if negative:
        number = -number

    if column is None:
        return number
    precision, scale = column
    limit = Decimal(10) ** (precision - scale)
    if abs(number) >= limit:
        return default
    number = number.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)
    return default if abs(number) >= limit else number


def parse_datetime(value: Any) -> Optional[datetime]:
    """Permissive date parsing; naive values are taken as UTC"""
    text = clean_text(value)
    if text is None:
        return None

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        try:
            parsed = pd.to_datetime(text, utc=True, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None

    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def parse_row(record: Mapping[str, Any], columns: Mapping[str, str], line_number: int) -> RowResult:
    """
    Convert one CSV record into a ParsedRow or a RowSkip.

    Args:
        record: Raw cells keyed by header
        columns: Mapping from ``resolve_columns``
        line_number: 1-based data line number, for logging

    Returns:
        ParsedRow when the row is usable, otherwise RowSkip
    """
    def field(name: str) -> Any:
        header = columns.get(name)
        return record.get(header) if header is not None else None

    try:
        order_code = clean_text(field("order_id"))
        product_code = clean_text(field("product_id"))
        if order_code is None or product_code is None:
            return RowSkip(line_number, "missing order or product identifier")

        return ParsedRow(
            line_number=line_number,
            order_code=order_code,
            product_code=product_code,
            customer_code=clean_text(field("customer_id")),
            product_name=clean_text(field("product_name")),
            category=clean_text(field("category")),
            region=clean_text(field("region")),
            date_of_sale=parse_datetime(field("date_of_sale")),
            quantity=parse_int(field("quantity"), DEFAULT_QUANTITY),
            unit_price=parse_decimal(field("unit_price"), DEFAULT_AMOUNT, MONEY_COLUMN),
            discount=parse_decimal(field("discount"), DEFAULT_AMOUNT, FRACTION_COLUMN),
            shipping_cost=parse_decimal(field("shipping_cost"), DEFAULT_AMOUNT, MONEY_COLUMN),
            payment_method=clean_text(field("payment_method")),
            customer_name=clean_text(field("customer_name")),
            customer_email=clean_text(field("customer_email")),
            customer_address=clean_text(field("customer_address")),
        )
    except Exception as e:
        return RowSkip(line_number, f"unparseable row: {e}")
