"""
CSV loading for enrichment batches.

Reads a contact CSV into ordered rows of string values and resolves the
email and name columns case-insensitively.
"""

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import structlog

from fire_enrich.core.exceptions import CSVParsingError, ValidationError

logger = structlog.get_logger(__name__)

EMAIL_COLUMN_CANDIDATES = ("email", "e-mail", "email_address", "work_email", "contact_email")


@dataclass
class CSVBatch:
    """Parsed rows ready for a session."""

    rows: List[Dict[str, str]]
    columns: List[str]
    email_column: str
    name_column: Optional[str] = None
    rows_without_email: List[int] = field(default_factory=list)


class CSVProcessor:
    """
    CSV processing with validation and normalization.
    """

    def __init__(self, strict_validation: bool = False):
        self.strict_validation = strict_validation

    def normalize_column_names(self, df: pd.DataFrame) -> Dict[str, str]:
        """Map lowercase, stripped column names to the originals."""
        return {str(c).lower().strip(): c for c in df.columns}

    def safe_string_conversion(self, value: Any) -> Optional[str]:
        """
        Convert a cell to a stripped string, treating NaN and None as missing.
        """
        if value is None:
            return None
        try:
            if pd.isna(value):
                return None
        except (TypeError, ValueError):
            pass
        text = str(value).strip()
        if text.lower() in ("nan", "none", ""):
            return None
        return text

    def read(self, source: Union[str, Path, bytes]) -> pd.DataFrame:
        """Read CSV from a path or raw bytes with every column as text."""
        try:
            if isinstance(source, bytes):
                return pd.read_csv(io.BytesIO(source), dtype=str, keep_default_na=False)
            return pd.read_csv(source, dtype=str, keep_default_na=False)
        except FileNotFoundError as e:
            raise CSVParsingError(f"CSV file not found: {source}") from e
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise CSVParsingError(f"Could not parse CSV: {e}") from e

    def resolve_column(
        self, df: pd.DataFrame, requested: Optional[str], candidates=()
    ) -> Optional[str]:
        """Find a column by exact or case-insensitive name, else by candidate names."""
        cols = self.normalize_column_names(df)
        if requested:
            if requested in df.columns:
                return requested
            match = cols.get(requested.lower().strip())
            if match is None:
                raise ValidationError(
                    f"Column '{requested}' not found. Available columns: {list(df.columns)}"
                )
            return match
        for candidate in candidates:
            if candidate in cols:
                return cols[candidate]
        return None

    def parse_rows(
        self,
        df: pd.DataFrame,
        email_column: Optional[str] = None,
        name_column: Optional[str] = None,
    ) -> CSVBatch:
        """
        Turn a DataFrame into rows for enrichment.

        Rows without an email are kept (they surface as row errors) unless
        strict validation is enabled, in which case they abort parsing.

        Raises:
            CSVParsingError: On structural problems
            ValidationError: When the email column cannot be found
        """
        if df.empty:
            raise ValidationError("CSV data is empty")

        resolved_email = self.resolve_column(df, email_column, EMAIL_COLUMN_CANDIDATES)
        if not resolved_email:
            raise ValidationError(
                f"No email column found. Available columns: {list(df.columns)}"
            )
        resolved_name = self.resolve_column(df, name_column) if name_column else None

        rows: List[Dict[str, str]] = []
        missing: List[int] = []
        for index, record in enumerate(df.to_dict(orient="records")):
            row = {
                str(key): self.safe_string_conversion(value) or ""
                for key, value in record.items()
            }
            if not row.get(resolved_email):
                if self.strict_validation:
                    raise CSVParsingError(f"Row {index}: email is required")
                missing.append(index)
            rows.append(row)

        logger.info(
            "CSV parsing completed",
            total_rows=len(rows),
            rows_without_email=len(missing),
            email_column=resolved_email,
        )
        return CSVBatch(
            rows=rows,
            columns=[str(c) for c in df.columns],
            email_column=resolved_email,
            name_column=resolved_name,
            rows_without_email=missing,
        )

    def load(
        self,
        source: Union[str, Path, bytes],
        email_column: Optional[str] = None,
        name_column: Optional[str] = None,
    ) -> CSVBatch:
        return self.parse_rows(self.read(source), email_column, name_column)
