import json

from payroll_pricing.data.build_defaults import build_default_tables


def test_build_seeds_tables_and_writes_report(settings):
    report = build_default_tables(settings, verbose=False)

    assert report["status"] == "success"
    assert report["metrics"]["tiers"] == 3
    assert report["metrics"]["jurisdictions"] == 4
    assert set(report["output_files"]) >= {'tiers_csv', 'tax_tables_csv', 'tax_brackets_csv'}

    saved = json.loads(settings.build_report.read_text())
    assert saved["status"] == "success"


def test_rebuild_without_force_keeps_existing_rows(settings):
    build_default_tables(settings, verbose=False)
    report = build_default_tables(settings, verbose=False)

    assert report["status"] == "success"
    assert len(report["warnings"]) == 2
    assert "tiers" not in report["metrics"]
