"""Installed distribution metadata."""

from importlib import metadata

from fire_enrich import __version__


class TestDistributionMetadata:
    def test_version_matches_package(self):
        assert metadata.version("fire-enrich") == __version__

    def test_long_description_is_not_a_design_document(self):
        meta = metadata.metadata("fire-enrich")
        text = (meta.get("Description") or "") + (meta.get_payload() or "")

        assert "PURPOSE & SCOPE" not in text
        assert meta["Summary"] == "Company intelligence enrichment for CSV rows of contact emails"
