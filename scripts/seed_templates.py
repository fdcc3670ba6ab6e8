#!/usr/bin/env python3
"""Seed the default prompt templates into the Prelix database.

Usage:
    python scripts/seed_templates.py          # insert missing defaults
    python scripts/seed_templates.py --list   # show the defaults without writing
"""

from __future__ import annotations

import argparse

from prelix.config import get_settings
from prelix.core.templates import DEFAULT_TEMPLATES, get_template_repository
from prelix.utils.logging import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed default prompt templates into Prelix")
    parser.add_argument("--list", action="store_true", help="Print the defaults and exit")
    args = parser.parse_args()

    if args.list:
        for entry in DEFAULT_TEMPLATES:
            print(f"  [{entry['category']}] {entry['subcategory']}: {entry['template_text'][:60]}...")
        return

    setup_logging(get_settings().log_level)
    print(f"Seeding {len(DEFAULT_TEMPLATES)} templates ...")
    created = get_template_repository().seed_defaults()
    print(f"Done. Created {created}, skipped {len(DEFAULT_TEMPLATES) - created}.")


if __name__ == "__main__":
    main()
