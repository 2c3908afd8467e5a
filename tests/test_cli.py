"""Command-line entry point."""

import pytest

from takealot_export import cli
from takealot_export.errors import ParseError, UpstreamFetchError
from takealot_export.types import DetailRow


@pytest.fixture
def captured(monkeypatch):
    calls = {}

    def fake_export(**kwargs):
        calls.update(kwargs)
        return [DetailRow(sku="1"), DetailRow(sku="2")]

    monkeypatch.setattr(cli, "export_to_excel", fake_export)
    return calls


class TestArgs:
    def test_defaults(self, captured):
        assert cli.main(["Garden:Pool"]) == 0
        assert captured["path"] == "Garden:Pool"
        assert captured["amount"] == 100
        assert captured["sort"] == "Relevance"
        assert captured["exclude"] == []
        assert captured["out_path"] == "products.xlsx"

    def test_repeatable_exclude(self, captured):
        cli.main(["Garden:DIY", "-x", "Power Tools", "--exclude", "Workwear", "-a", "5", "-s", "Field:price+Ascending"])

        assert captured["exclude"] == ["Power Tools", "Workwear"]
        assert captured["amount"] == 5
        assert captured["sort"] == "Field:price+Ascending"

    def test_success_output(self, captured, capsys):
        cli.main(["Garden:Pool", "-o", "out.xlsx"])
        out = capsys.readouterr().out
        assert "Saved products: 2" in out
        assert "out.xlsx" in out


class TestExitCodes:
    @pytest.mark.parametrize(
        "error, code",
        [
            (ParseError("Failed to parse sort type"), 2),
            (UpstreamFetchError("HTTP 503"), 1),
            (OSError("read-only"), 1),
            (KeyboardInterrupt(), 130),
        ],
    )
    def test_errors_mapped(self, monkeypatch, capsys, error, code):
        def failing(**kwargs):
            raise error

        monkeypatch.setattr(cli, "export_to_excel", failing)

        assert cli.main(["Garden:Pool"]) == code
        assert capsys.readouterr().err
