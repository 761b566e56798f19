"""
Unit Tests - Row Parser
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.ingestion.row_parser import (
    ParsedRow,
    RowSkip,
    parse_datetime,
    parse_decimal,
    parse_int,
    parse_row,
    resolve_columns,
)


class TestResolveColumns:
    """Tests for header synonym resolution"""

    def test_canonical_headers(self):
        columns = resolve_columns(["Order ID", "Product ID", "Quantity Sold", "Unit Price"])

        assert columns["order_id"] == "Order ID"
        assert columns["product_id"] == "Product ID"
        assert columns["quantity"] == "Quantity Sold"
        assert columns["unit_price"] == "Unit Price"

    def test_case_and_whitespace_insensitive(self):
        """Test that 'ORDERID' and ' order id ' both match"""
        columns = resolve_columns([" order id ", "PRODUCTID", "shippingcost"])

        assert columns["order_id"] == " order id "
        assert columns["product_id"] == "PRODUCTID"
        assert columns["shipping_cost"] == "shippingcost"

    def test_missing_fields_left_out(self):
        columns = resolve_columns(["Order ID", "Product ID"])

        assert "customer_id" not in columns
        assert "discount" not in columns

    def test_first_synonym_wins(self):
        """Test 'Quantity Sold' is preferred over 'Quantity'"""
        columns = resolve_columns(["Quantity", "Quantity Sold"])

        assert columns["quantity"] == "Quantity Sold"


class TestFieldParsing:
    """Tests for permissive field parsing"""

    @pytest.mark.parametrize("raw,expected", [
        ("2", 2),
        (" 7 ", 7),
        ("-3", -3),
        ("2.5", 1),
        ("abc", 1),
        ("", 1),
        (None, 1),
    ])
    def test_parse_int(self, raw, expected):
        assert parse_int(raw, 1) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("2147483647", 2147483647),
        ("-2147483648", -2147483648),
        ("2147483648", 1),
        ("3000000000", 1),
        ("100000000000000000000", 1),
    ])
    def test_parse_int_out_of_int32_range(self, raw, expected):
        assert parse_int(raw, 1) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("9.99", Decimal("9.99")),
        ("1,234.50", Decimal("1234.50")),
        ("(5.00)", Decimal("-5.00")),
        (".5", Decimal("0.5")),
        ("1e2", Decimal("100")),
        ("n/a", Decimal("0")),
        ("NaN", Decimal("0")),
        ("Infinity", Decimal("0")),
        ("", Decimal("0")),
    ])
    def test_parse_decimal(self, raw, expected):
        assert parse_decimal(raw, Decimal("0")) == expected

    def test_parse_decimal_returns_decimal(self):
        assert isinstance(parse_decimal("9.99", Decimal("0")), Decimal)

    @pytest.mark.parametrize("raw,column,expected", [
        ("9.995", (12, 2), Decimal("10.00")),
        ("0.12345", (6, 4), Decimal("0.1235")),
        ("9999999999.99", (12, 2), Decimal("9999999999.99")),
        ("10000000000", (12, 2), Decimal("0")),
        ("9999999999.999", (12, 2), Decimal("0")),
        ("150", (6, 4), Decimal("0")),
        ("1e30", (12, 2), Decimal("0")),
        ("(25.50)", (12, 2), Decimal("-25.50")),
    ])
    def test_parse_decimal_fits_column(self, raw, column, expected):
        assert parse_decimal(raw, Decimal("0"), column) == expected

    def test_parse_datetime_naive_is_utc(self):
        parsed = parse_datetime("2025-01-05")

        assert parsed == datetime(2025, 1, 5, tzinfo=timezone.utc)

    def test_parse_datetime_with_offset(self):
        parsed = parse_datetime("2025-01-05T10:00:00+02:00")

        assert parsed == datetime(2025, 1, 5, 8, 0, tzinfo=timezone.utc)

    def test_parse_datetime_unparseable(self):
        assert parse_datetime("not a date") is None
        assert parse_datetime("") is None


class TestParseRow:
    """Tests for whole-row parsing"""

    COLUMNS = resolve_columns([
        "Order ID", "Product ID", "Customer ID", "Quantity Sold",
        "Unit Price", "Discount", "Shipping Cost", "Category",
    ])

    def _record(self, **overrides):
        record = {
            "Order ID": "1001",
            "Product ID": "P1",
            "Customer ID": "C1",
            "Quantity Sold": "2",
            "Unit Price": "9.99",
            "Discount": "0.1",
            "Shipping Cost": "5.00",
            "Category": "Tools",
        }
        record.update(overrides)
        return record

    def test_valid_row(self):
        result = parse_row(self._record(), self.COLUMNS, 1)

        assert isinstance(result, ParsedRow)
        assert result.order_code == "1001"
        assert result.product_code == "P1"
        assert result.customer_code == "C1"
        assert result.quantity == 2
        assert result.unit_price == Decimal("9.99")
        assert result.discount == Decimal("0.1")
        assert result.shipping_cost == Decimal("5.00")
        assert result.category == "Tools"

    @pytest.mark.parametrize("field", ["Order ID", "Product ID"])
    def test_missing_identifier_skips(self, field):
        result = parse_row(self._record(**{field: "  "}), self.COLUMNS, 7)

        assert isinstance(result, RowSkip)
        assert result.line_number == 7

    def test_unparseable_numbers_default(self):
        result = parse_row(
            self._record(**{"Quantity Sold": "x", "Unit Price": "?", "Discount": "", "Shipping Cost": "free"}),
            self.COLUMNS,
            1,
        )

        assert result.quantity == 1
        assert result.unit_price == Decimal("0")
        assert result.discount == Decimal("0")
        assert result.shipping_cost == Decimal("0")

    def test_out_of_range_numbers_default(self):
        result = parse_row(
            self._record(**{
                "Quantity Sold": "100000000000000000000",
                "Unit Price": "1e15",
                "Discount": "150",
                "Shipping Cost": "99999999999",
            }),
            self.COLUMNS,
            1,
        )

        assert isinstance(result, ParsedRow)
        assert result.quantity == 1
        assert result.unit_price == Decimal("0")
        assert result.discount == Decimal("0")
        assert result.shipping_cost == Decimal("0")

    def test_missing_customer_is_none(self):
        result = parse_row(self._record(**{"Customer ID": ""}), self.COLUMNS, 1)

        assert isinstance(result, ParsedRow)
        assert result.customer_code is None

    def test_absent_optional_columns(self):
        columns = resolve_columns(["Order ID", "Product ID"])
        result = parse_row({"Order ID": "1", "Product ID": "P"}, columns, 1)

        assert result.quantity == 1
        assert result.unit_price == Decimal("0")
        assert result.date_of_sale is None
        assert result.category is None
