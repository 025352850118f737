"""Unit tests for the hardened bulk CSV parser."""

import pytest

from chandler.bulk.models import BulkOrderRow
from chandler.bulk.parser import SecureCSVParser, generate_secure_csv, sanitize_identifier
from chandler.config.models.bulk import BulkConfig
from chandler.errors import ContentRejectedError, ValidationError


@pytest.fixture
def parser() -> SecureCSVParser:
    return SecureCSVParser()


class TestRowThreats:
    """Tests for row-level threat detection."""

    def test_sql_injection_row_excluded(self, parser: SecureCSVParser) -> None:
        """A row with SQL injection is dropped and reported."""
        result = parser.parse("sku,quantity\nSKU-MUG,2\n\"'; DROP TABLE users; --\",1\n")

        assert [row.sku for row in result.rows] == ["SKU-MUG"]
        [threat] = result.security_threats
        assert threat.threat_type == "sql_injection"
        assert threat.row == 2
        assert threat.column == "sku"
        assert not result.success

    def test_overlong_field(self, parser: SecureCSVParser) -> None:
        """An overlong SKU is a field_length threat counted as one error row."""
        content = "sku,quantity\nSKU-A,1\nSKU-B,2\n" + "A" * 200 + ",3\nSKU-C,4\n"

        result = parser.parse(content)

        assert result.summary.total_rows == 4
        assert result.summary.valid_rows == 3
        assert result.summary.error_rows == 1
        assert result.summary.total_quantity == 7
        [threat] = result.security_threats
        assert threat.threat_type == "field_length"
        assert len(threat.value) == 50

    @pytest.mark.parametrize(
        ("value", "threat_type"),
        [
            ("<script>alert(1)</script>", "script_injection"),
            ("../../etc/passwd", "path_traversal"),
            ("$(rm -rf /)", "command_injection"),
        ],
    )
    def test_threat_families_in_notes(self, parser: SecureCSVParser, value: str, threat_type: str) -> None:
        """Every field is scanned, not just the SKU."""
        result = parser.parse(f"sku,quantity,notes\nSKU-MUG,1,\"{value}\"\n")

        assert result.rows == []
        assert threat_type in {t.threat_type for t in result.security_threats}

    def test_plain_notes_are_escaped(self, parser: SecureCSVParser) -> None:
        """Harmless markup in notes is HTML-escaped rather than rejected."""
        result = parser.parse("sku,quantity,notes\nSKU-MUG,1,<b>rush</b>\n")
        assert result.rows[0].notes == "&lt;b&gt;rush&lt;/b&gt;"


class TestRowValidation:
    """Tests for header mapping and field validation."""

    def test_header_synonyms(self, parser: SecureCSVParser) -> None:
        """Common header aliases map to canonical columns."""
        result = parser.parse("Product,Qty,Ref,Priority\nSKU-MUG,3,PO-1,HIGH\n")

        row = result.rows[0]
        assert (row.sku, row.quantity, row.reference_id, row.priority) == ("SKU-MUG", 3, "PO-1", "high")

    def test_missing_required_columns(self, parser: SecureCSVParser) -> None:
        """Uploads without sku and quantity columns are rejected."""
        with pytest.raises(ValidationError, match="quantity"):
            parser.parse("sku,notes\nSKU-MUG,hi\n")

    @pytest.mark.parametrize("quantity", ["abc", "0", "-2"])
    def test_invalid_quantity(self, parser: SecureCSVParser, quantity: str) -> None:
        """Non-positive or non-numeric quantities are row errors."""
        result = parser.parse(f"sku,quantity\nSKU-MUG,{quantity}\n")

        assert result.rows == []
        assert result.errors[0].column == "quantity"
        assert result.summary.error_rows == 1

    def test_blank_lines_skipped(self, parser: SecureCSVParser) -> None:
        """Empty records do not count as rows."""
        result = parser.parse("sku,quantity\n\nSKU-MUG,1\n,\n")
        assert result.summary.total_rows == 1

    def test_max_rows(self, parser: SecureCSVParser) -> None:
        """Rows beyond the limit are ignored and reported once."""
        content = "sku,quantity\n" + "".join(f"SKU-{i},1\n" for i in range(5))

        result = parser.parse(content, max_rows=3)

        assert result.summary.total_rows == 3
        assert result.summary.error_rows == 0
        [error] = result.errors
        assert error.row == 4
        assert "(2 rows ignored)" in error.message


class TestContentChecks:
    """Tests for whole-upload rejection."""

    def test_utf8_bom_is_stripped(self, parser: SecureCSVParser) -> None:
        """A leading byte order mark does not break the header."""
        result = parser.parse(b"\xef\xbb\xbfsku,quantity\nSKU-MUG,1\n")
        assert result.summary.valid_rows == 1

    def test_null_bytes_rejected(self, parser: SecureCSVParser) -> None:
        """Null bytes reject the whole upload."""
        with pytest.raises(ContentRejectedError, match="null bytes"):
            parser.parse(b"sku,quantity\nSKU\x00,1\n")

    def test_invalid_utf8_rejected(self, parser: SecureCSVParser) -> None:
        """Non UTF-8 content is rejected."""
        with pytest.raises(ContentRejectedError, match="UTF-8"):
            parser.parse(b"sku,quantity\n\xff\xfe,1\n")

    def test_binary_content_rejected(self, parser: SecureCSVParser) -> None:
        """A high share of control characters looks like binary data."""
        with pytest.raises(ContentRejectedError, match="binary"):
            parser.parse(b"sku,quantity\n" + b"\x01\x02\x03" * 10)

    def test_size_limit(self) -> None:
        """Uploads over max_file_size are rejected."""
        parser = SecureCSVParser(BulkConfig(max_file_size=10))
        with pytest.raises(ContentRejectedError) as exc_info:
            parser.parse("sku,quantity\nSKU-MUG,1\n")
        assert exc_info.value.details["size"] > 10

    def test_field_over_reader_limit_rejected(self, parser: SecureCSVParser) -> None:
        """A field too large for the csv reader rejects the upload as field_length."""
        content = "SKU,Quantity,Notes\nSKU-MUG,1," + "x" * 200_000 + "\n"

        with pytest.raises(ContentRejectedError, match="too large") as exc_info:
            parser.parse(content)

        assert exc_info.value.details == {"line": 2, "threat_type": "field_length"}


class TestHelpers:
    """Tests for sanitize_identifier and generate_secure_csv."""

    def test_sanitize_identifier(self) -> None:
        """Unsafe characters are stripped and clean SKUs are unchanged."""
        assert sanitize_identifier("SKU 12<>;") == "SKU12"
        assert sanitize_identifier("SKU-12_A") == "SKU-12_A"
        assert sanitize_identifier(sanitize_identifier("SKU 12<>;")) == "SKU12"

    def test_generate_secure_csv_escapes_formulas(self) -> None:
        """Cells starting with formula characters are prefixed with a quote."""
        rows = [BulkOrderRow(sku="SKU-1", quantity=2, notes="=SUM(A1)")]
        assert generate_secure_csv(rows) == (
            "SKU,Quantity,Notes,Reference,Priority\n"
            "SKU-1,2,'=SUM(A1),,normal\n"
        )
