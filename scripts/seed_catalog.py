from __future__ import annotations

import argparse
from pathlib import Path

from sqlmodel import Session

from turnstile.core.catalog import CatalogRegistry, get_catalog_registry, load_catalog_file
from turnstile.db.init_db import init_db
from turnstile.db.session import engine
from turnstile.services.catalog_seed import seed_catalog


def main() -> None:
    parser = argparse.ArgumentParser(
        description=(
            'Seed products, models and usage limits. The API also seeds the CATALOG '
            'setting on startup unless SEED_CATALOG_ON_STARTUP=false.'
        )
    )
    parser.add_argument(
        '--path',
        default=None,
        help='Path to a catalog JSON file (defaults to the CATALOG setting)',
    )
    parser.add_argument('--dry-run', action='store_true', help='Validate only, do not write to DB')
    args = parser.parse_args()

    if args.path:
        registry = CatalogRegistry(load_catalog_file(Path(args.path).expanduser()))
    else:
        registry = get_catalog_registry()
    if args.dry_run:
        print(f"validated {len(registry.products())} products and {len(registry.models())} models")
        return

    init_db()
    with Session(engine) as session:
        summary = seed_catalog(session, registry)
    print(
        f"seeded catalog: created={summary.created} updated={summary.updated} unchanged={summary.unchanged}"
    )


if __name__ == '__main__':
    main()
