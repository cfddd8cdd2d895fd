#!/usr/bin/env python3
"""Emit idempotent SQL that seeds the lookup tables posts and jobs reference."""

from __future__ import annotations

import argparse

from scholarship_gateway.core.slugs import slugify

DEFAULT_LOOKUPS: dict[str, tuple[str, ...]] = {
    "degree_levels": ("Bachelor's", "Master's", "PhD", "Postdoctoral", "Diploma"),
    "funding_types": ("Fully Funded", "Partially Funded", "Self Funded"),
    "employment_types": ("Full Time", "Part Time", "Contract", "Internship"),
}


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, table: str, names: tuple[str, ...] | list[str]) -> str:
    rows: list[str] = []
    seen: set[str] = set()
    for name in names:
        slug = slugify(name)
        if not slug or slug in seen:
            continue
        seen.add(slug)
        rows.append(f"  ({_quote_sql(name.strip())}, {_quote_sql(slug)})")
    if not rows:
        return f"-- nothing to seed for {table}\n"

    values_sql = ",\n".join(rows)
    return f"""insert into {table} (name, slug)
values
{values_sql}
on conflict (slug) do nothing;
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to seed lookup tables.")
    parser.add_argument(
        "--table",
        choices=sorted(DEFAULT_LOOKUPS),
        action="append",
        help="Table to seed (repeatable); defaults to every table",
    )
    parser.add_argument(
        "--name",
        action="append",
        help="Seed these names instead of the defaults (requires exactly one --table)",
    )
    args = parser.parse_args()

    tables = args.table or sorted(DEFAULT_LOOKUPS)
    if args.name and len(tables) != 1:
        parser.error("--name requires exactly one --table")

    print("-- Lookup seed SQL; safe to run repeatedly.")
    for table in tables:
        print(render_sql(table=table, names=args.name or DEFAULT_LOOKUPS[table]))


if __name__ == "__main__":
    main()
