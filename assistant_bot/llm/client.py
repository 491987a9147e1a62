# assistant_bot/llm/client.py
from __future__ import annotations

import re
from typing import Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[LLM]", "cyan")

SYSTEM_PROMPT = (
    "You are a personal finance assistant. Answer clearly and practically: "
    "cash flow, budgeting, lending, portfolio questions. Use short sections, "
    "bullet lists and Markdown. Never invent figures the user did not provide."
)

FALLBACK_MODEL = "gpt-4o"

# ------------------------------------------------------------------ #
# 1. Выбор модели (speed-first)                                      #
# ------------------------------------------------------------------ #
NANO_MAX_WORDS = 20
MINI_MAX_WORDS = 100
SPEED_KEYWORDS = (
    "quick", "fast", "urgent", "now", "asap", "immediate",
    "hello", "hi", "thanks", "yes", "no", "ok", "time", "date",
)
COMPLEX_PATTERNS = (
    re.compile(r"analy[sz]e|evaluate|assess|compare|optimi[sz]e", re.IGNORECASE),
    re.compile(r"portfolio|strategy|analysis|calculation", re.IGNORECASE),
    re.compile(r"comprehensive|detailed|thorough", re.IGNORECASE),
    re.compile(r"multi|complex|sophisticated", re.IGNORECASE),
)


class ModelChoice(BaseModel):
    model: str
    reasoning_effort: str
    max_completion_tokens: int
    timeout: float
    reason: str
    complexity_score: int = 0


def select_model(query: str) -> ModelChoice:
    """Cheapest model that is likely good enough for the query."""
    words = query.lower().split()
    word_count = len(words)

    score = 2 if word_count > 50 else 1 if word_count > 20 else 0
    score += sum(1 for pattern in COMPLEX_PATTERNS if pattern.search(query))

    if any(word.strip(".,!?") in SPEED_KEYWORDS for word in words):
        return ModelChoice(
            model="gpt-5-nano", reasoning_effort="minimal", max_completion_tokens=400,
            timeout=5, reason="speed keyword",
        )
    if word_count <= NANO_MAX_WORDS or score == 0:
        return ModelChoice(
            model="gpt-5-nano", reasoning_effort="minimal", max_completion_tokens=600,
            timeout=5, reason="simple query", complexity_score=score,
        )
    if word_count <= MINI_MAX_WORDS or score <= 2:
        return ModelChoice(
            model="gpt-5-mini", reasoning_effort="low", max_completion_tokens=1200,
            timeout=15, reason="medium query", complexity_score=score,
        )
    return ModelChoice(
        model="gpt-5", reasoning_effort="medium", max_completion_tokens=2000,
        timeout=45, reason="complex query", complexity_score=score,
    )


# ------------------------------------------------------------------ #
# 2. Клиент                                                          #
# ------------------------------------------------------------------ #
class LLMError(Exception):
    pass


class LLMAnswer(BaseModel):
    text: str
    model: str


class LLMClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Optional[AsyncOpenAI] = None):
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.forced_model = model

    async def close(self) -> None:
        await self.client.close()

    def _messages(self, query: str, history: Optional[List[Dict[str, str]]]) -> List[Dict[str, str]]:
        return [{"role": "system", "content": SYSTEM_PROMPT}, *(history or []), {"role": "user", "content": query}]

    async def ask(self, query: str, history: Optional[List[Dict[str, str]]] = None) -> LLMAnswer:
        """Ask the selected model, falling back to ``FALLBACK_MODEL`` once."""
        choice = select_model(query)
        model = self.forced_model or choice.model
        logger.info(f"Query ({len(query)} chars) -> {model}: {choice.reason}")
        messages = self._messages(query, history)

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_completion_tokens=choice.max_completion_tokens,
                timeout=choice.timeout,
                **({"reasoning_effort": choice.reasoning_effort} if model.startswith("gpt-5") else {}),
            )
        except OpenAIError as e:
            logger.warning(f"{model} failed: {e}; retrying with {FALLBACK_MODEL}")
            model = FALLBACK_MODEL
            try:
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_completion_tokens=choice.max_completion_tokens,
                )
            except OpenAIError as fallback_error:
                raise LLMError(str(fallback_error)) from fallback_error

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise LLMError(f"{model} returned an empty answer")
        return LLMAnswer(text=text, model=response.model or model)
