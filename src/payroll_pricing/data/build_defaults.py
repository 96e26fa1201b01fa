"""
Default Tables Builder - seeds a data directory with the standard pricing
tiers, features and tax tables.

Writes a JSON build report alongside the tables with the row counts and a
short hash of every file produced.
"""
import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config.settings import Settings, get_settings
from ..errors import PayrollPricingError
from ..services.pricing_service import PricingService
from ..services.tax_service import TaxService


def get_file_hash(path: Path) -> str:
    """Get SHA256 hash of a file."""
    if not path.exists():
        return ""
    with open(path, 'rb') as f:
        return hashlib.sha256(f.read()).hexdigest()[:12]


def build_default_tables(settings: Optional[Settings] = None, force: bool = False,
                         verbose: bool = True) -> dict:
    """
    Seed the pricing and tax tables.

    Args:
        settings: Optional settings override
        force: Add the pricing defaults and reseed tax tables even when rows exist
        verbose: Print progress messages

    Returns:
        Build report dictionary
    """
    settings = settings or get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "timestamp": datetime.now().isoformat(),
        "status": "pending",
        "output_files": {},
        "metrics": {},
        "warnings": [],
        "errors": []
    }

    pricing = PricingService(settings)
    taxes = TaxService(settings)

    try:
        seeded = pricing.initialize_defaults(force=force)
        report["metrics"]["tiers"] = len(seeded["tiers"])
        report["metrics"]["features"] = len(seeded["features"])
        report["metrics"]["feature_availability"] = seeded["availability_count"]
        if verbose:
            print(f"SUCCESS: Seeded {len(seeded['tiers'])} pricing tiers and "
                  f"{len(seeded['features'])} features")
    except PayrollPricingError as e:
        report["warnings"].append(f"Pricing tables skipped: {e}")
        if verbose:
            print(f"WARNING: {e}")

    try:
        counts = taxes.initialize_defaults(force=force)
        report["metrics"].update(counts)
        if verbose:
            print(f"SUCCESS: Seeded {counts['jurisdictions']} jurisdictions and "
                  f"{counts['tax_tables']} tax tables")
    except PayrollPricingError as e:
        report["warnings"].append(f"Tax tables skipped: {e}")
        if verbose:
            print(f"WARNING: {e}")

    for name in ('tiers_csv', 'features_csv', 'feature_availability_csv',
                 'jurisdictions_csv', 'tax_tables_csv', 'tax_brackets_csv'):
        path = getattr(settings, name)
        if path.exists():
            report["output_files"][name] = {"path": str(path), "hash": get_file_hash(path)}
        else:
            report["errors"].append(f"{path.name} was not written")

    report["status"] = "failed" if report["errors"] else "success"

    report_path = settings.build_report
    report_path.parent.mkdir(parents=True, exist_ok=True)
    with open(report_path, 'w') as f:
        json.dump(report, f, indent=2)

    if verbose:
        print(f"Build report saved to: {report_path}")

    return report


if __name__ == "__main__":
    build_default_tables()
