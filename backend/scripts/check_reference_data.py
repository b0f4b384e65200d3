#!/usr/bin/env python3
"""
Check that every reference dataset loads from the configured store.
Run from backend: python scripts/check_reference_data.py [--ingredients "Water, Milk" --category CONVENTIONAL_FOOD]
Exit 0 if every dataset loaded; 1 if any failed.
"""
import argparse
import json
import sys
from pathlib import Path

# Add backend to path when run as script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Load reference datasets and optionally analyze a label.")
    parser.add_argument("--ingredients", help="Comma-separated ingredient list to analyze")
    parser.add_argument("--category", default="CONVENTIONAL_FOOD", help="Product category for --ingredients")
    parser.add_argument("--allergen-declared", action="store_true", help="Label carries an allergen declaration")
    args = parser.parse_args(argv)

    from labelcheck.config import get_reference_store_backend
    from labelcheck.errors import ComplianceEngineError
    from labelcheck.service import build_engine

    print(f"Checking reference datasets (store={get_reference_store_backend()})...")
    try:
        engine = build_engine()
    except ComplianceEngineError as e:
        print(f"  Store unavailable - {e}")
        return 1

    loaded = engine.cache.warm()
    stats = engine.cache.stats()
    for kind, ok in loaded.items():
        detail = stats.get(kind.value) or {}
        msg = f"{detail.get('count', 0)} entries (version={detail.get('version')})" if ok else "failed to load"
        print(f"  {kind.value:<20} {'OK' if ok else 'FAIL'} - {msg}")

    all_ok = all(loaded.values())
    if args.ingredients and all_ok:
        try:
            report = engine.analyze_compliance(
                ingredients=args.ingredients,
                product_category=args.category,
                allergen_declaration_present=args.allergen_declared,
            )
        except ComplianceEngineError as e:
            print(f"Analysis failed: {e}")
            engine.cache.close()
            return 1
        print(json.dumps(report.to_dict(), indent=2))

    engine.cache.close()
    if all_ok:
        print("All reference datasets loaded.")
        return 0
    print("One or more reference datasets failed to load.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
