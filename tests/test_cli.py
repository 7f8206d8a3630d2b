"""Command-line interface."""

import json

import click
import pytest
from click.testing import CliRunner

from conftest import offline_settings
from fire_enrich import main as cli
from fire_enrich.core.models import FieldType


class TestParseFieldOption:
    def test_name_and_type(self):
        field = cli.parse_field_option("Qtd. Sinais:number")
        assert field.name == "Qtd. Sinais"
        assert field.display_name == "Qtd. Sinais"
        assert field.type == FieldType.NUMBER

    def test_type_defaults_to_string(self):
        assert cli.parse_field_option("industry").type == FieldType.STRING

    def test_unknown_type(self):
        with pytest.raises(click.BadParameter):
            cli.parse_field_option("industry:date")


class TestCommands:
    """Commands run offline with every provider credential cleared."""

    @pytest.fixture(autouse=True)
    def offline(self, monkeypatch):
        monkeypatch.setattr(cli, "get_settings", offline_settings)
        monkeypatch.setattr(cli, "load_dotenv", lambda: None)

    def test_fields_lists_catalogue(self):
        result = CliRunner().invoke(cli.main, ["fields"])
        assert result.exit_code == 0
        assert "company_name" in result.output

    def test_enrich_writes_json_lines(self, tmp_path):
        source = tmp_path / "contacts.csv"
        source.write_text("Email,Company\njane@acme.com,Acme\njoe@gmail.com,\n", encoding="utf-8")
        output = tmp_path / "out.jsonl"

        result = CliRunner().invoke(
            cli.main,
            [
                "enrich",
                str(source),
                "--field",
                "companyName",
                "--name-column",
                "Company",
                "--output",
                str(output),
                "--skip-validation",
            ],
        )

        assert result.exit_code == 0, result.output
        lines = [json.loads(line) for line in output.read_text(encoding="utf-8").splitlines()]
        assert [line["rowIndex"] for line in lines] == [0, 1]
        assert lines[0]["status"] == "completed"
        assert lines[1]["status"] == "skipped"

    def test_enrich_requires_a_field(self, tmp_path):
        source = tmp_path / "contacts.csv"
        source.write_text("Email\njane@acme.com\n", encoding="utf-8")

        result = CliRunner().invoke(cli.main, ["enrich", str(source)])

        assert result.exit_code != 0
