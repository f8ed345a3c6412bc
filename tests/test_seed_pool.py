from scripts.seed_pool import POOL_DIR, load_pool_file, seed_pool
from engines.pool import PoolStore


def test_shipped_pool_files_are_valid():
    files = sorted(POOL_DIR.glob("*.yaml"))
    assert {f.stem for f in files} == {"grammar", "vocabulary"}

    for path in files:
        drafts, problems = load_pool_file(path)
        assert problems == []
        assert {d.level for d in drafts} == {"beginner", "intermediate", "advanced"}


def test_invalid_items_are_reported(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text(
        "category: vocabulary\n"
        "levels:\n"
        "  beginner:\n"
        "    - word: cold\n"
        "      exercise_type: antonym\n"
        "      correct_answer: hot\n"
        "      options: [warm, cool]\n"
    )

    drafts, problems = load_pool_file(path)

    assert drafts == []
    assert len(problems) == 1


def test_unknown_category_is_reported(tmp_path):
    path = tmp_path / "reading.yaml"
    path.write_text("category: reading\nlevels: {}\n")

    drafts, problems = load_pool_file(path)

    assert drafts == []
    assert "unknown category" in problems[0]


async def test_seeding_is_idempotent(db):
    drafts, _ = load_pool_file(POOL_DIR / "grammar.yaml")

    first = await seed_pool(db, drafts)
    second = await seed_pool(db, drafts)

    assert first.added == len(drafts)
    assert second.added == 0
    assert second.skipped == len(drafts)
    assert (await PoolStore(db).count("grammar")).unwrap() == len(drafts)


async def test_dry_run_writes_nothing(db):
    drafts, _ = load_pool_file(POOL_DIR / "vocabulary.yaml")

    report = await seed_pool(db, drafts, dry_run=True)

    assert report.added == len(drafts)
    assert (await PoolStore(db).count()).unwrap() == 0
