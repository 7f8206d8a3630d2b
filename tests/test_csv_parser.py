"""Validate CSV parser functionality and output integrity."""

from io import StringIO

import pandas as pd
import pytest

from fire_enrich.core.exceptions import CSVParsingError, ValidationError
from fire_enrich.data.csv_parser import CSVProcessor


class TestCSVProcessor:
    """Validate CSV processing functionality."""

    def setup_method(self):
        """Prepare fixtures for each test."""
        self.processor = CSVProcessor(strict_validation=False)

        self.sample_csv = b"""Name,Email,Company,Website
Jane Doe,jane@acme.com,Acme Corporation,acme.com
John Roe,,Globex,globex.com
Ana Lima,ana@initech.com.br,Initech,
"""

    def test_column_normalization(self):
        """Ensure column names are normalized correctly."""
        df = pd.read_csv(StringIO("EMAIL,Company Name,Website\na@b.com,B,b.com"))

        normalized = self.processor.normalize_column_names(df)

        assert normalized["email"] == "EMAIL"
        assert normalized["company name"] == "Company Name"

    def test_load_from_bytes_detects_email_column(self):
        batch = self.processor.load(self.sample_csv)

        assert batch.email_column == "Email"
        assert batch.columns == ["Name", "Email", "Company", "Website"]
        assert len(batch.rows) == 3
        assert batch.rows[0] == {
            "Name": "Jane Doe",
            "Email": "jane@acme.com",
            "Company": "Acme Corporation",
            "Website": "acme.com",
        }

    def test_missing_values_become_empty_strings(self):
        batch = self.processor.load(self.sample_csv)

        assert batch.rows[1]["Email"] == ""
        assert batch.rows[2]["Website"] == ""
        assert batch.rows_without_email == [1]

    def test_requested_columns_resolve_case_insensitively(self):
        batch = self.processor.load(self.sample_csv, email_column="email", name_column="company")

        assert batch.email_column == "Email"
        assert batch.name_column == "Company"

    def test_unknown_requested_column(self):
        with pytest.raises(ValidationError) as excinfo:
            self.processor.load(self.sample_csv, email_column="correo")
        assert "correo" in excinfo.value.message

    def test_no_email_column(self):
        with pytest.raises(ValidationError):
            self.processor.load(b"Name,Company\nJane,Acme\n")

    def test_strict_mode_rejects_rows_without_email(self):
        strict = CSVProcessor(strict_validation=True)
        with pytest.raises(CSVParsingError):
            strict.load(self.sample_csv)

    def test_load_from_path(self, tmp_path):
        path = tmp_path / "contacts.csv"
        path.write_bytes(self.sample_csv)

        batch = self.processor.load(path)

        assert len(batch.rows) == 3

    def test_unreadable_input(self, tmp_path):
        with pytest.raises(CSVParsingError):
            self.processor.load(tmp_path / "missing.csv")
        with pytest.raises(CSVParsingError):
            self.processor.load(b"")

    def test_header_only_is_empty(self):
        with pytest.raises(ValidationError):
            self.processor.load(b"Email,Company\n")

    def test_safe_string_conversion(self):
        assert self.processor.safe_string_conversion(None) is None
        assert self.processor.safe_string_conversion(float("nan")) is None
        assert self.processor.safe_string_conversion("  Acme  ") == "Acme"
        assert self.processor.safe_string_conversion("None") is None
