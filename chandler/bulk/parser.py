"""Hardened CSV parsing for bulk order uploads.

Uploads are checked as a whole first (size, encoding, binary content),
then row by row against injection patterns. Rows with findings are
dropped and reported; the rest are sanitized and validated.
"""

import csv
import html
import io
import re
from collections.abc import Iterable, Iterator
from typing import NoReturn

from pydantic import ValidationError as PydanticValidationError

from chandler.bulk.models import (
    BulkOrderRow,
    CSVParseError,
    CSVParseResult,
    CSVParseSummary,
    SecurityThreat,
    ThreatType,
)
from chandler.config.models.bulk import BulkConfig
from chandler.errors import ContentRejectedError, ValidationError
from chandler.observability.logging import get_logger
from chandler.observability.metrics import BULK_ROWS

logger = get_logger(__name__)

HEADER_SYNONYMS: dict[str, str] = {
    "sku": "sku",
    "product": "sku",
    "item": "sku",
    "code": "sku",
    "quantity": "quantity",
    "qty": "quantity",
    "amount": "quantity",
    "notes": "notes",
    "note": "notes",
    "comments": "notes",
    "reference_id": "reference_id",
    "reference": "reference_id",
    "ref": "reference_id",
    "id": "reference_id",
    "priority": "priority",
}

REQUIRED_COLUMNS = ("sku", "quantity")

FIELD_MAX_LENGTHS: dict[str, int] = {
    "sku": 100,
    "notes": 500,
    "reference_id": 100,
    "priority": 10,
}

THREAT_PATTERNS: dict[ThreatType, list[re.Pattern[str]]] = {
    "sql_injection": [
        re.compile(
            r"\b(?:union\s+(?:all\s+)?select|select\s+.+\s+from|insert\s+into|delete\s+from"
            r"|drop\s+(?:table|database|schema)|alter\s+table|update\s+\w+\s+set"
            r"|truncate\s+table|exec(?:ute)?\s*\()",
            re.IGNORECASE,
        ),
        re.compile(r"'\s*(?:or|and)\s+['\d\w]+\s*=", re.IGNORECASE),
        re.compile(r"(?:;|')\s*--|/\*.*?\*/"),
        re.compile(r"\b(?:xp_\w+|sp_executesql|information_schema|sys\.\w+)", re.IGNORECASE),
    ],
    "script_injection": [
        re.compile(r"<\s*script[^>]*>", re.IGNORECASE),
        re.compile(r"<\s*iframe[^>]*>", re.IGNORECASE),
        re.compile(r"javascript\s*:", re.IGNORECASE),
        re.compile(r"\bon(?:load|error|click|mouse\w*|key\w*|submit|focus|blur)\s*=", re.IGNORECASE),
        re.compile(r"\b(?:eval|expression)\s*\(", re.IGNORECASE),
    ],
    "path_traversal": [
        re.compile(r"\.\.[/\\]"),
        re.compile(r"\.\.%(?:2f|5c)", re.IGNORECASE),
        re.compile(r"%2e%2e(?:[/\\]|%2f|%5c)", re.IGNORECASE),
        re.compile(r"/etc/(?:passwd|shadow|hosts)", re.IGNORECASE),
        re.compile(r"[a-z]:\\.*\\system32", re.IGNORECASE),
    ],
    "command_injection": [
        re.compile(r"\$\([^)]*\)"),
        re.compile(r"\$\{[^}]*\}"),
        re.compile(r"`[^`]*`"),
        re.compile(r"&&|\|\|"),
        re.compile(
            r"[;|&]\s*(?:rm|cat|curl|wget|sh|bash|nc|chmod|python\d?|perl|powershell)\b",
            re.IGNORECASE,
        ),
    ],
}

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
ALL_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
UNSAFE_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_-]")
FORMULA_PREFIXES = ("=", "+", "-", "@")
THREAT_VALUE_LENGTH = 50


def sanitize_identifier(value: str) -> str:
    """Reduce a SKU or reference to ``[A-Za-z0-9_-]``."""
    return UNSAFE_IDENTIFIER_CHARS.sub("", ALL_CONTROL_CHARS.sub("", value))


def sanitize_text(value: str) -> str:
    """Strip control characters and escape HTML."""
    return html.escape(ALL_CONTROL_CHARS.sub("", value), quote=True)


def escape_csv_field(value: str) -> str:
    """Neutralize spreadsheet formulas."""
    if value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


def generate_secure_csv(rows: Iterable[BulkOrderRow]) -> str:
    """Export rows as CSV that is safe to open in a spreadsheet."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(["SKU", "Quantity", "Notes", "Reference", "Priority"])
    for row in rows:
        writer.writerow(
            [
                escape_csv_field(row.sku),
                str(row.quantity),
                escape_csv_field(row.notes or ""),
                escape_csv_field(row.reference_id or ""),
                row.priority,
            ]
        )
    return buffer.getvalue()


class SecureCSVParser:
    """Parses bulk order CSV uploads.

    Content-level problems reject the whole upload with
    ContentRejectedError. Row-level threats exclude just that row.
    """

    def __init__(self, config: BulkConfig | None = None) -> None:
        self._config = config or BulkConfig()

    def parse(self, content: bytes | str, max_rows: int | None = None) -> CSVParseResult:
        limit = max_rows or self._config.max_rows
        text = self._decode(content)

        records = self._records(text)
        header = next(records, None)
        columns = self._map_header(header or [])

        rows: list[BulkOrderRow] = []
        errors: list[CSVParseError] = []
        threats: list[SecurityThreat] = []
        error_rows: set[int] = set()
        total = 0
        overflow = 0

        for record in records:
            if not any(cell.strip() for cell in record):
                continue
            if total >= limit:
                overflow += 1
                continue
            total += 1
            row_number = total

            fields = self._extract(record, columns)
            row_threats = self._scan(row_number, fields)
            if row_threats:
                threats.extend(row_threats)
                error_rows.add(row_number)
                BULK_ROWS.labels(outcome="threat").inc()
                continue

            row, row_errors = self._validate(row_number, fields)
            if row is None:
                errors.extend(row_errors)
                error_rows.add(row_number)
                BULK_ROWS.labels(outcome="invalid").inc()
                continue
            rows.append(row)
            BULK_ROWS.labels(outcome="accepted").inc()

        if overflow:
            errors.append(
                CSVParseError(
                    row=limit + 1,
                    message=f"Exceeded maximum row limit of {limit} ({overflow} rows ignored)",
                )
            )

        if threats:
            logger.warning(
                "bulk_threats_detected",
                threat_count=len(threats),
                rows=sorted({t.row for t in threats}),
                threat_types=sorted({t.threat_type for t in threats}),
            )

        summary = CSVParseSummary(
            total_rows=total,
            valid_rows=len(rows),
            error_rows=len(error_rows),
            total_quantity=sum(row.quantity for row in rows),
            unique_skus=len({row.sku for row in rows}),
        )
        logger.info("bulk_csv_parsed", **summary.model_dump())
        return CSVParseResult(rows=rows, errors=errors, security_threats=threats, summary=summary)

    def _decode(self, content: bytes | str) -> str:
        raw = content.encode("utf-8", errors="surrogatepass") if isinstance(content, str) else content
        if len(raw) > self._config.max_file_size:
            self._reject(
                f"Content exceeds maximum allowed size of {self._config.max_file_size} bytes",
                size=len(raw),
            )
        if isinstance(content, str):
            text = content
        else:
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError as e:
                self._reject("Content is not valid UTF-8", position=e.start)
        try:
            text.encode("utf-8")
        except UnicodeEncodeError as e:
            self._reject("Content is not valid UTF-8", position=e.start)

        text = text.removeprefix("\ufeff")
        if "\x00" in text:
            self._reject("Content contains null bytes")
        control = len(CONTROL_CHARS.findall(text))
        if text and control / len(text) > self._config.max_control_char_ratio:
            self._reject("Content contains binary data", control_chars=control)
        return text

    def _records(self, text: str) -> Iterator[list[str]]:
        """Yield CSV records, turning reader errors into a rejected upload.

        The csv module refuses fields above its own size limit. Such a
        field is far past every column ceiling, so it is reported as a
        field_length rejection instead of escaping as csv.Error.
        """
        reader = csv.reader(io.StringIO(text), skipinitialspace=True)
        try:
            yield from reader
        except csv.Error as e:
            details: dict[str, object] = {"line": reader.line_num}
            if "field limit" in str(e):
                details["threat_type"] = "field_length"
                self._reject(f"Field on line {reader.line_num} is too large", **details)
            self._reject(f"Malformed CSV on line {reader.line_num}", **details)

    def _reject(self, reason: str, **details: object) -> NoReturn:
        logger.warning("bulk_content_rejected", reason=reason, **details)
        raise ContentRejectedError(reason, dict(details))

    def _map_header(self, header: list[str]) -> dict[str, int]:
        columns: dict[str, int] = {}
        for index, name in enumerate(header):
            canonical = HEADER_SYNONYMS.get(name.strip().lower())
            if canonical and canonical not in columns:
                columns[canonical] = index
        missing = [name for name in REQUIRED_COLUMNS if name not in columns]
        if missing:
            raise ValidationError(
                f"CSV is missing required columns: {', '.join(missing)}",
                {"missing_columns": missing, "header": header},
            )
        return columns

    def _extract(self, record: list[str], columns: dict[str, int]) -> dict[str, str]:
        return {
            name: record[index].strip() if index < len(record) else ""
            for name, index in columns.items()
        }

    def _scan(self, row: int, fields: dict[str, str]) -> list[SecurityThreat]:
        found = []
        for column, value in fields.items():
            if not value:
                continue
            ceiling = FIELD_MAX_LENGTHS.get(column)
            if ceiling is not None and len(value) > ceiling:
                found.append(
                    SecurityThreat(
                        row=row,
                        column=column,
                        threat_type="field_length",
                        value=value[:THREAT_VALUE_LENGTH],
                        message=f"Field exceeds maximum length of {ceiling} characters",
                    )
                )
            for threat_type, patterns in THREAT_PATTERNS.items():
                if any(pattern.search(value) for pattern in patterns):
                    found.append(
                        SecurityThreat(
                            row=row,
                            column=column,
                            threat_type=threat_type,
                            value=value[:THREAT_VALUE_LENGTH],
                            message=f"Potential {threat_type.replace('_', ' ')} detected",
                        )
                    )
        return found

    def _validate(
        self, row: int, fields: dict[str, str]
    ) -> tuple[BulkOrderRow | None, list[CSVParseError]]:
        data = {
            "sku": sanitize_identifier(fields.get("sku", "")),
            "quantity": fields.get("quantity", ""),
            "notes": sanitize_text(fields["notes"]) if fields.get("notes") else None,
            "reference_id": (
                sanitize_identifier(fields["reference_id"]) or None
                if fields.get("reference_id")
                else None
            ),
            "priority": fields.get("priority", "").lower() or "normal",
        }
        try:
            return BulkOrderRow.model_validate(data), []
        except PydanticValidationError as e:
            return None, [
                CSVParseError(
                    row=row,
                    column=str(err["loc"][0]) if err["loc"] else None,
                    value=str(data.get(str(err["loc"][0]), "")) if err["loc"] else None,
                    message=err["msg"],
                )
                for err in e.errors()
            ]
