import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import grammar_draft
from core.errors import ErrorCode
from engines.attempts import AttemptStore, answers_match, normalize_answer
from models import Attempt


async def _served(db, seed_items, open_session, user_id="learner-1", prompt="She go home."):
    (item,) = await seed_items(grammar_draft(prompt, correct_answer="She goes home."))
    session_id = await open_session(user_id)
    store = AttemptStore(db)
    attempt = (await store.create(user_id, session_id, item.id)).unwrap()
    await db.commit()
    return store, attempt, item


async def test_create_records_category_from_item(db, seed_items, open_session):
    _, attempt, item = await _served(db, seed_items, open_session)

    assert attempt.category == "grammar"
    assert attempt.pool_item_id == item.id
    assert attempt.is_correct is None


async def test_create_for_unknown_item_is_not_found(db, open_session):
    session_id = await open_session()
    result = await AttemptStore(db).create("learner-1", session_id, uuid.uuid4())

    assert result.unwrap_err().code == ErrorCode.E4010_NOT_FOUND


async def test_grade_correct_and_incorrect(db, seed_items, open_session):
    store, attempt, _ = await _served(db, seed_items, open_session)

    graded = (await store.grade(attempt.id, "She goes home.")).unwrap()
    assert graded.is_correct
    assert graded.correct_answer == "She goes home."

    _, other, _ = await _served(db, seed_items, open_session, user_id="learner-2", prompt="He run fast.")
    graded = (await store.grade(other.id, "wrong")).unwrap()
    assert not graded.is_correct


async def test_grading_is_exact_by_default(db, seed_items, open_session):
    store, attempt, _ = await _served(db, seed_items, open_session)

    graded = (await store.grade(attempt.id, "she goes home.")).unwrap()

    assert not graded.is_correct


async def test_grading_can_normalize(db, seed_items, open_session):
    store, attempt, _ = await _served(db, seed_items, open_session)

    graded = (await store.grade(attempt.id, "  she   GOES home. ", normalize=True)).unwrap()

    assert graded.is_correct


async def test_second_grade_is_rejected(db, seed_items, open_session):
    store, attempt, _ = await _served(db, seed_items, open_session)
    (await store.grade(attempt.id, "wrong")).unwrap()
    await db.commit()

    result = await store.grade(attempt.id, "She goes home.")

    error = result.unwrap_err()
    assert error.code == ErrorCode.E5005_ALREADY_GRADED
    assert error.code.http_status == 409


async def test_grade_that_loses_a_race_is_rejected(db, seed_items, open_session, monkeypatch):
    store, attempt, _ = await _served(db, seed_items, open_session)
    real_execute = AsyncSession.execute
    raced = []

    async def execute(self, statement, *args, **kwargs):
        if getattr(statement, "is_update", False) and not raced:
            # Another submission grades the attempt between the read and the write
            raced.append(statement)
            await real_execute(
                self,
                update(Attempt)
                .where(Attempt.id == attempt.id)
                .values(user_answer="She goes home.", is_correct=True, graded_at=datetime.utcnow()),
            )
        return await real_execute(self, statement, *args, **kwargs)

    monkeypatch.setattr(AsyncSession, "execute", execute)
    result = await store.grade(attempt.id, "wrong")
    monkeypatch.undo()
    await db.commit()

    assert raced
    assert result.unwrap_err().code == ErrorCode.E5005_ALREADY_GRADED
    stored = (await db.execute(
        select(Attempt.user_answer, Attempt.is_correct).where(Attempt.id == attempt.id)
    )).one()
    assert tuple(stored) == ("She goes home.", True)


async def test_grade_unknown_attempt(db):
    result = await AttemptStore(db).grade(uuid.uuid4(), "anything")

    assert result.unwrap_err().code == ErrorCode.E4010_NOT_FOUND


async def test_history_hides_answer_until_graded(db, seed_items, open_session):
    store, attempt, _ = await _served(db, seed_items, open_session)

    (record,) = (await store.history("learner-1", "grammar")).unwrap()
    assert record.correct_answer is None
    assert record.is_correct is None

    await store.grade(attempt.id, "She goes home.")
    await db.commit()
    (record,) = (await store.history("learner-1", "grammar")).unwrap()
    assert record.correct_answer == "She goes home."
    assert record.user_answer == "She goes home."


async def test_stats_count_graded_attempts_only(db, seed_items, open_session):
    store, attempt, _ = await _served(db, seed_items, open_session)
    _, pending, _ = await _served(db, seed_items, open_session, prompt="They was late.")
    await store.grade(attempt.id, "She goes home.")
    await db.commit()

    stats = (await store.stats("learner-1", "grammar", points_per_correct=10)).unwrap()

    assert stats.total_exercises == 1
    assert stats.total_correct == 1
    assert stats.total_points == 10
    assert stats.by_kind == {"correction": {"total": 1, "correct": 1}}
    assert (await store.list_attempted_item_ids("learner-1", "grammar")).unwrap() == {
        attempt.pool_item_id,
        pending.pool_item_id,
    }


def test_answer_helpers():
    assert normalize_answer("  Hello \t World ") == "hello world"
    assert answers_match("a b", "a b")
    assert not answers_match("A b", "a b")
    assert answers_match("A  b", "a b", normalize=True)
