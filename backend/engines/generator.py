"""Exercise generation with the language model.

Asks the model for one new grammar or vocabulary exercise at a level,
steering it away from stimuli the learner has already seen, and turns
the reply into a validated ExerciseDraft.
"""
import asyncio
import json
import re

from pydantic import ValidationError

from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    external_service_unavailable,
    invalid_model_output,
    timeout_error,
)
from core.logging import generator_logger
from engines.catalog import ExerciseDraft
from engines.llm import LanguageModel

log = generator_logger()

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

SYSTEM_PROMPT = (
    "You write short English language exercises for a learning app. "
    "Always answer with a single JSON object and nothing else."
)

GENERATION_PROMPTS = {
    'grammar': """Generate a single grammar exercise for {level} learners.
Respond in strict JSON format with these fields:
- sentence (string)
- exercise_type (correction|fill_blank|quiz)
- correct_answer (string)
- grammar_rule (string)
- feedback (string)
- options (array of strings, required for quiz and must contain correct_answer)
- blank_position (integer, optional)""",

    'vocabulary': """Generate a single vocabulary exercise for {level} English learners.
Respond strictly in JSON format with these fields:
- word (string)
- exercise_type ("synonym" | "antonym" | "context" | "recognition")
- correct_answer (string)
- options (array of strings, must contain correct_answer)
- example_sentence (string, optional)""",
}

EXCLUSION_HINT = """
The learner has already practised these, so do not reuse any of them:
{items}"""


def parse_json_reply(raw: str) -> dict | None:
    """Strip markdown fences and parse a JSON object; None if it is not one."""
    cleaned = _FENCE_RE.sub("", (raw or "").strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def build_prompt(category: str, level: str, exclusions: list[str]) -> str:
    prompt = GENERATION_PROMPTS[category].format(level=level)
    if exclusions:
        prompt += EXCLUSION_HINT.format(items="\n".join(f"- {text}" for text in exclusions))
    return prompt


class ItemGenerator:
    """Produces new pool items on demand."""

    __slots__ = ('_model', '_timeout', '_max_tokens', '_exclusion_limit')

    def __init__(
        self,
        model: LanguageModel | None,
        *,
        timeout: float = 20.0,
        max_tokens: int = 600,
        exclusion_limit: int = 30,
    ):
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._exclusion_limit = exclusion_limit

    @property
    def available(self) -> bool:
        return self._model is not None

    async def generate(
        self,
        category: str,
        level: str,
        exclusions: list[str] | None = None,
    ) -> Result[ExerciseDraft, AppError]:
        """Generate one exercise.

        The exclusion list is a hint only: the model may still repeat a
        stimulus, and the result is accepted either way.
        """
        if self._model is None:
            return external_service_unavailable(
                "language_model", "no API key configured", origin="item_generator"
            )

        hints = list(exclusions or [])[:self._exclusion_limit]
        messages = [
            {'role': 'system', 'content': SYSTEM_PROMPT},
            {'role': 'user', 'content': build_prompt(category, level, hints)},
        ]

        log.debug("generation_requested", category=category, level=level, exclusions=len(hints))
        try:
            reply = await asyncio.wait_for(
                self._model.complete(
                    messages,
                    max_tokens=self._max_tokens,
                    temperature=0.9,
                    json_output=True,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            log.warning("generation_timeout", category=category, level=level, timeout=self._timeout)
            return timeout_error("generate_exercise", self._timeout, origin="item_generator")

        match reply:
            case Err(error):
                log.warning("generation_failed", category=category, level=level, code=error.code.name)
                return reply
            case Ok(raw):
                return self._parse(category, level, raw)

    def _parse(self, category: str, level: str, raw: str) -> Result[ExerciseDraft, AppError]:
        payload = parse_json_reply(raw)
        if payload is None:
            log.warning("generation_unparseable", category=category, level=level, raw=raw[:200])
            return invalid_model_output("unparseable JSON", raw=raw, origin="item_generator")

        try:
            draft = ExerciseDraft.from_payload(category, level, payload)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "payload"
            reason = f"{field}: {first.get('msg', 'invalid')}"
            log.warning("generation_invalid", category=category, level=level, reason=reason)
            return invalid_model_output(reason, raw=raw, origin="item_generator")

        log.info(
            "exercise_generated",
            category=category,
            level=level,
            kind=draft.exercise_kind,
        )
        return Ok(draft)
