"""
Tests for extractor.parser — invoice field extraction from raw text.
"""

import pytest

from extractor.parser import derive_due_date, detect_currency, parse, parse_number
from conftest import SAMPLE_INVOICE_TEXT


class TestParse:
    def test_full_invoice(self):
        record = parse(SAMPLE_INVOICE_TEXT)
        assert record.invoice_number == "INV-2024-001"
        assert record.customer_name == "Globex Trading LLC"
        assert record.customer_email == "accounts@globex.example"
        assert record.amount == pytest.approx(1534.99)
        assert record.currency == "EUR"
        assert record.invoice_date == "15/03/2024"
        assert record.due_date == "14/04/2024"  # derived from "Payment within 30 days"
        assert record.confidence == 100
        assert record.raw_text == SAMPLE_INVOICE_TEXT

    def test_nothing_recognisable(self):
        record = parse("Thank you for your business.\nSee you next season.")
        assert record.confidence == 0
        assert record.invoice_number is None
        assert record.customer_name is None
        assert record.customer_email is None
        assert record.amount is None
        assert record.currency is None
        assert record.invoice_date is None
        assert record.due_date is None

    def test_empty_text(self):
        record = parse("")
        assert record.confidence == 0
        assert record.raw_text == ""

    def test_partial_fields_confidence(self):
        record = parse("Invoice # 7781\nTotal 99.50 USD")
        assert record.invoice_number == "7781"
        assert record.amount == pytest.approx(99.5)
        assert record.currency == "USD"
        assert record.customer_name is None
        assert record.confidence == pytest.approx(200 / 3)

    def test_idempotent(self):
        assert parse(SAMPLE_INVOICE_TEXT) == parse(SAMPLE_INVOICE_TEXT)

    def test_labels_are_case_insensitive(self):
        record = parse("INVOICE NUMBER: ab-12\nBILL TO: Initech\nGRAND TOTAL: 10.00")
        assert record.invoice_number == "ab-12"
        assert record.customer_name == "Initech"
        assert record.amount == pytest.approx(10.0)

    def test_subtotal_is_not_the_total(self):
        record = parse("Subtotal: 80.00\nTotal: 100.00")
        assert record.amount == pytest.approx(100.0)

    def test_labelled_due_date(self):
        record = parse("Invoice Date: 03/01/2024\nDue Date: 03/31/2024\nPayment within 10 days")
        assert record.invoice_date == "03/01/2024"
        assert record.due_date == "03/31/2024"

    def test_bare_date_skips_due_date(self):
        record = parse("Due Date: 10/02/2024\nDate: 01/02/2024")
        assert record.invoice_date == "01/02/2024"
        assert record.due_date == "10/02/2024"

    def test_customer_label_on_next_line(self):
        record = parse("Bill To:\nUmbrella Corp\nInvoice No. U-77")
        assert record.customer_name == "Umbrella Corp"
        assert record.invoice_number == "U-77"

    def test_email_prefers_bill_to_block(self):
        text = "ACME Supplies\nbilling@acme.example\nBill To: Globex\nAP@Globex.example"
        assert parse(text).customer_email == "ap@globex.example"

    def test_email_without_customer_label(self):
        assert parse("Questions? help@acme.example").customer_email == "help@acme.example"


class TestParseNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1,534.00", 1534.0),
            ("1.534,00", 1534.0),
            ("1,534", 1534.0),
            ("12,50", 12.5),
            ("99.", 99.0),
            ("7978", 7978.0),
        ],
    )
    def test_formats(self, raw, expected):
        assert parse_number(raw) == pytest.approx(expected)

    def test_garbage(self):
        assert parse_number("..") is None


class TestDetectCurrency:
    def test_symbols(self):
        assert detect_currency("Total € 10") == "EUR"
        assert detect_currency("Total $10") == "USD"
        assert detect_currency("Total £10") == "GBP"
        assert detect_currency("Total AED 10") == "AED"

    def test_none(self):
        assert detect_currency("Total 10") is None


class TestDeriveDueDate:
    def test_day_first(self):
        assert derive_due_date("15/03/2024", 30) == "14/04/2024"

    def test_month_first(self):
        assert derive_due_date("03/01/2024", 30) == "03/31/2024"

    def test_keeps_separator(self):
        assert derive_due_date("20-12-2023", 14) == "03-01-2024"

    def test_two_digit_year(self):
        assert derive_due_date("01/15/24", 1) == "01/16/2024"

    def test_invalid_date(self):
        assert derive_due_date("31/02/2024", 10) is None
