import json
import uuid

from conftest import grammar_draft, grammar_reply
from core.errors import generation_failed


async def _open(client, user_id="learner-1", mode="grammar", level="beginner") -> str:
    resp = await client.post("/api/sessions", json={"user_id": user_id, "mode": mode, "level": level})
    assert resp.status_code == 201
    return resp.json()["id"]


async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["language_model"] is True
    assert "X-Correlation-ID" in resp.headers


async def test_session_lifecycle(client):
    session_id = await _open(client, mode="vocabulary", level="advanced")

    got = await client.get(f"/api/sessions/{session_id}")
    assert got.json()["mode"] == "vocabulary"
    assert got.json()["is_completed"] is False

    done = await client.post(f"/api/sessions/{session_id}/complete")
    assert done.status_code == 200
    assert done.json()["is_completed"] is True


async def test_unknown_session_is_404(client):
    resp = await client.get(f"/api/sessions/{uuid.uuid4()}")

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "E4010_NOT_FOUND"


async def test_serve_and_submit(client, seed_items):
    await seed_items(grammar_draft("They was here.", correct_answer="They were here.", feedback="Plural subject."))
    session_id = await _open(client)

    served = await client.post(
        "/api/exercises/grammar/next",
        json={"user_id": "learner-1", "session_id": session_id, "level": "beginner"},
    )
    assert served.status_code == 200
    body = served.json()
    assert body["prompt_text"] == "They was here."
    assert "correct_answer" not in body
    assert "feedback" not in body

    graded = await client.post(
        "/api/exercises/submit",
        json={"attempt_id": body["attempt_id"], "user_answer": "They were here.", "elapsed_seconds": 8},
    )
    assert graded.status_code == 200
    assert graded.json()["is_correct"] is True
    assert graded.json()["feedback"] == "Plural subject."
    assert graded.json()["session"]["score"] == 10

    again = await client.post(
        "/api/exercises/submit",
        json={"attempt_id": body["attempt_id"], "user_answer": "They were here."},
    )
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "E5005_ALREADY_GRADED"


async def test_generation_path_and_failure(client, fake_model):
    session_id = await _open(client)
    request = {"user_id": "learner-1", "session_id": session_id, "level": "beginner"}
    fake_model.queue(grammar_reply("Fresh sentence."), generation_failed("upstream down"))

    generated = await client.post("/api/exercises/grammar/next", json=request)
    failed = await client.post("/api/exercises/grammar/next", json=request)

    assert generated.status_code == 200
    assert generated.json()["source"] == "generated"
    assert failed.status_code == 503
    assert failed.json()["error"]["code"] == "E1030_GENERATION_FAILED"
    assert failed.json()["error"]["retryable"] is True


async def test_invalid_model_output_is_502(client, fake_model):
    session_id = await _open(client)
    fake_model.queue("not json at all")

    resp = await client.post(
        "/api/exercises/grammar/next",
        json={"user_id": "learner-1", "session_id": session_id, "level": "beginner"},
    )

    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "E1031_GENERATION_INVALID_OUTPUT"


async def test_request_validation_is_400(client):
    bad_level = await client.post(
        "/api/exercises/grammar/next",
        json={"user_id": "learner-1", "session_id": str(uuid.uuid4()), "level": "expert"},
    )
    bad_category = await client.post(
        "/api/exercises/reading/next",
        json={"user_id": "learner-1", "session_id": str(uuid.uuid4()), "level": "beginner"},
    )
    missing = await client.post("/api/exercises/submit", json={"user_answer": "x"})

    assert bad_level.status_code == 400
    assert bad_category.status_code == 400
    assert missing.status_code == 400
    assert missing.json()["error"]["category"] == "validation"


async def test_history_and_stats(client, seed_items):
    await seed_items(grammar_draft("I has a dog.", correct_answer="I have a dog."))
    session_id = await _open(client)
    served = (await client.post(
        "/api/exercises/grammar/next",
        json={"user_id": "learner-1", "session_id": session_id, "level": "beginner"},
    )).json()
    await client.post("/api/exercises/submit", json={"attempt_id": served["attempt_id"], "user_answer": "I have a dog."})

    history = await client.get("/api/exercises/grammar/history", params={"user_id": "learner-1"})
    stats = await client.get("/api/exercises/grammar/stats", params={"user_id": "learner-1"})

    assert history.status_code == 200
    assert history.json()[0]["is_correct"] is True
    assert stats.json()["total_exercises"] == 1
    assert stats.json()["total_points"] == 10
    assert stats.json()["accuracy"] == 1.0
    assert stats.json()["by_kind"]["correction"] == {"total": 1, "correct": 1}


async def test_conversation_flow(client, fake_model):
    scenarios = await client.get("/api/conversation/scenarios")
    assert {s["key"] for s in scenarios.json()} >= {"restaurant", "doctor"}

    started = await client.post(
        "/api/conversation/start",
        json={"user_id": "learner-1", "scenario": "restaurant", "level": "beginner"},
    )
    assert started.status_code == 200
    session_id = started.json()["session_id"]
    assert started.json()["message"].startswith("Hello! Welcome to our restaurant.")

    fake_model.queue(json.dumps({
        "ai_reply": "Of course. Anything else?",
        "corrected_text": "I would like soup.",
        "correction_explanation": "Polite request.",
        "context_summary": "Ordering soup.",
    }))
    chat = await client.post(
        "/api/conversation/chat",
        json={"session_id": session_id, "message": "I want soup", "user_id": "learner-1"},
    )
    assert chat.status_code == 200
    assert chat.json()["corrected_text"] == "I would like soup."

    history = await client.get(f"/api/conversation/{session_id}/history")
    assert [m["role"] for m in history.json()] == ["assistant", "user", "assistant"]


async def test_conversation_upstream_failure(client, fake_model):
    started = (await client.post(
        "/api/conversation/start",
        json={"user_id": "learner-1", "scenario": "travel"},
    )).json()
    fake_model.queue(generation_failed("upstream down"))

    resp = await client.post("/api/conversation/chat", json={"session_id": started["session_id"], "message": "Hi"})

    assert resp.status_code == 503
    history = await client.get(f"/api/conversation/{started['session_id']}/history")
    assert len(history.json()) == 1
