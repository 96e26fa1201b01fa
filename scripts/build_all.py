#!/usr/bin/env python
"""
Build pipeline - seeds the default tables and runs the test suite.

Usage:
    python scripts/build_all.py [--force]
"""
import subprocess
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from payroll_pricing.data.build_defaults import build_default_tables


def main():
    force = '--force' in sys.argv[1:]

    print("=" * 60)
    print("PAYROLL PRICING BUILD PIPELINE")
    print("=" * 60)
    print()

    print("[1/2] Seeding default tables...")
    report = build_default_tables(force=force, verbose=True)

    if report["status"] != "success":
        print("\n❌ BUILD FAILED")
        for error in report["errors"]:
            print(f"  ERROR: {error}")
        sys.exit(1)

    print()
    print("[2/2] Running tests...")

    test_result = subprocess.run(
        [sys.executable, '-m', 'pytest', 'tests', '-v', '--tb=short'],
        cwd=Path(__file__).parent.parent
    )

    if test_result.returncode != 0:
        print("\n❌ TESTS FAILED")
        sys.exit(1)

    print()
    print("=" * 60)
    print("✅ BUILD COMPLETE")
    print("=" * 60)
    print()
    print("Summary:")
    for name, count in report["metrics"].items():
        print(f"  {name}: {count}")
    for warning in report["warnings"]:
        print(f"  WARNING: {warning}")


if __name__ == "__main__":
    main()
