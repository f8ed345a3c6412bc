#!/usr/bin/env python3
"""Seed the shared exercise pool from YAML files.

Reads data/pool/*.yaml, validates every item and inserts the ones whose
stimulus is not already in the pool at that category and level, so the
script can be re-run safely.

Run with: python3 -m scripts.seed_pool [--dry-run] [--data-dir DIR]
"""
import argparse
import asyncio
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import build_engine, build_sessionmaker, commit_or_rollback, create_tables
from core.errors import Err, Ok
from engines.catalog import CATEGORIES, ExerciseDraft
from engines.pool import PoolStore

POOL_DIR = Path(__file__).parent.parent.parent / "data" / "pool"


@dataclass
class SeedReport:
    added: int = 0
    skipped: int = 0
    invalid: list[str] = field(default_factory=list)


def load_pool_file(path: Path) -> tuple[list[ExerciseDraft], list[str]]:
    """Parse one pool file into drafts plus a list of problems found."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    category = data.get("category")
    if category not in CATEGORIES:
        return [], [f"{path.name}: unknown category {category!r}"]

    drafts: list[ExerciseDraft] = []
    problems: list[str] = []
    for level, items in (data.get("levels") or {}).items():
        for idx, payload in enumerate(items or []):
            try:
                drafts.append(ExerciseDraft.from_payload(category, level, payload))
            except ValidationError as e:
                problems.append(f"{path.name}: {level}[{idx}]: {e.errors()[0]['msg']}")
    return drafts, problems


async def seed_pool(session: AsyncSession, drafts: list[ExerciseDraft], *, dry_run: bool = False) -> SeedReport:
    store = PoolStore(session)
    report = SeedReport()

    for draft in drafts:
        match await store.has_prompt(draft.category, draft.level, draft.prompt_text):
            case Ok(True):
                report.skipped += 1
                continue
            case Err(error):
                raise RuntimeError(str(error))

        if not dry_run:
            match await store.insert(draft, origin="seed"):
                case Err(error):
                    raise RuntimeError(str(error))
        report.added += 1
        print(f"  + [{draft.category}/{draft.level}] {draft.prompt_text}")

    if dry_run:
        await session.rollback()
    else:
        match await commit_or_rollback(session):
            case Err(error):
                raise RuntimeError(str(error))
    return report


async def main(data_dir: Path, database_url: str, dry_run: bool) -> SeedReport:
    engine = build_engine(database_url)
    try:
        await create_tables(engine)

        drafts: list[ExerciseDraft] = []
        problems: list[str] = []
        for path in sorted(data_dir.glob("*.yaml")):
            file_drafts, file_problems = load_pool_file(path)
            print(f"{path.name}: {len(file_drafts)} items")
            drafts.extend(file_drafts)
            problems.extend(file_problems)

        for problem in problems:
            print(f"  ! {problem}")

        async with build_sessionmaker(engine)() as session:
            report = await seed_pool(session, drafts, dry_run=dry_run)
        report.invalid = problems

        verb = "Would add" if dry_run else "Added"
        print(f"\n{verb} {report.added} items, skipped {report.skipped} existing, {len(problems)} invalid")
        return report
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the LinguaAI exercise pool")
    parser.add_argument("--data-dir", type=Path, default=POOL_DIR, help="Directory of pool YAML files")
    parser.add_argument("--database-url", default=settings.DATABASE_URL, help="Database URL (default: from settings)")
    parser.add_argument("--dry-run", action="store_true", help="Validate and report without writing")
    args = parser.parse_args()

    asyncio.run(main(args.data_dir, args.database_url, args.dry_run))
