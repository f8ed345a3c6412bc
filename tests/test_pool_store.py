import random

from conftest import FakeLanguageModel, grammar_draft, grammar_reply
from engines.attempts import AttemptStore
from engines.catalog import ExerciseDraft
from engines.generator import ItemGenerator
from engines.pool import PoolStore


async def test_find_unattempted_skips_excluded(db, seed_items):
    first, second = await seed_items(grammar_draft("one"), grammar_draft("two"))
    store = PoolStore(db, random.Random(1))

    item = (await store.find_unattempted("grammar", "beginner", {first.id})).unwrap()

    assert item.id == second.id


async def test_find_unattempted_returns_none_when_exhausted(db, seed_items):
    items = await seed_items(grammar_draft("one"), grammar_draft("two"))
    store = PoolStore(db)

    result = await store.find_unattempted("grammar", "beginner", {i.id for i in items})

    assert result.is_ok()
    assert result.unwrap() is None


async def test_find_unattempted_filters_category_and_level(db, seed_items):
    await seed_items(grammar_draft("hard one", level="advanced"))
    store = PoolStore(db)

    assert (await store.find_unattempted("grammar", "beginner", set())).unwrap() is None
    assert (await store.find_unattempted("vocabulary", "advanced", set())).unwrap() is None
    assert (await store.find_unattempted("grammar", "advanced", set())).unwrap() is not None


async def test_seeded_selection_is_repeatable(db, seed_items):
    await seed_items(*(grammar_draft(f"sentence {i}") for i in range(6)))

    picks = []
    for _ in range(2):
        store = PoolStore(db, random.Random(42))
        picks.append([(await store.find_unattempted("grammar", "beginner", set())).unwrap().id for _ in range(4)])

    assert picks[0] == picks[1]


async def test_insert_count_and_has_prompt(db):
    store = PoolStore(db)
    item = (await store.insert(grammar_draft("I goes home."))).unwrap()
    await db.commit()

    assert item.origin == "generated"
    assert (await store.count("grammar", "beginner")).unwrap() == 1
    assert (await store.count("vocabulary")).unwrap() == 0
    assert (await store.has_prompt("grammar", "beginner", "I goes home.")).unwrap()
    assert not (await store.has_prompt("grammar", "advanced", "I goes home.")).unwrap()
    assert (await store.get(item.id)).unwrap().prompt_text == "I goes home."


async def test_generated_item_reads_back_unchanged(db):
    reply = grammar_reply(
        "She ___ to school by bus.",
        exercise_type="quiz",
        correct_answer="goes",
        options=["go", "goes", "going", "gone"],
        grammar_rule="Present simple, third person singular.",
        feedback="He, she and it take -s.",
        blank_position=1,
    )
    draft = (await ItemGenerator(FakeLanguageModel(reply)).generate("grammar", "intermediate", [])).unwrap()
    store = PoolStore(db)
    item_id = (await store.insert(draft)).unwrap().id
    await db.commit()
    db.expunge_all()

    stored = (await store.get(item_id)).unwrap()

    assert stored.category == "grammar"
    assert stored.level == "intermediate"
    assert stored.prompt_text == "She ___ to school by bus."
    assert stored.exercise_kind == "quiz"
    assert stored.correct_answer == "goes"
    assert stored.options == ["go", "goes", "going", "gone"]
    assert stored.grammar_rule == "Present simple, third person singular."
    assert stored.feedback == "He, she and it take -s."
    assert stored.blank_position == 1
    assert stored.example_sentence is None
    assert {
        name: getattr(stored, name) for name in ExerciseDraft.model_fields
    } == draft.model_dump()


async def test_find_unattempted_excludes_items_attempted_by_user(db, seed_items, open_session):
    first, second = await seed_items(grammar_draft("one"), grammar_draft("two"))
    session_id = await open_session("learner-1")
    (await AttemptStore(db).create("learner-1", session_id, first.id)).unwrap()
    await db.commit()
    store = PoolStore(db, random.Random(3))

    for _ in range(5):
        item = (await store.find_unattempted("grammar", "beginner", attempted_by="learner-1")).unwrap()
        assert item.id == second.id

    other = {
        (await store.find_unattempted("grammar", "beginner", attempted_by="learner-2")).unwrap().id
        for _ in range(20)
    }
    assert other == {first.id, second.id}

    (await AttemptStore(db).create("learner-1", session_id, second.id)).unwrap()
    await db.commit()
    assert (await store.find_unattempted("grammar", "beginner", attempted_by="learner-1")).unwrap() is None
