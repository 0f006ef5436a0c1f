"""Structured text classification on top of the LLM abstraction."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Protocol

from utils.exceptions import ClassifierOutputError, LLMError, TransientCollaboratorError
from .llm import BaseLLM


logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class TextClassifier(Protocol):
    """Sends a prompt and returns the parsed JSON object.

    Raises ``QuotaExceededError`` on quota/rate limits and
    ``TransientCollaboratorError`` (incl. ``ClassifierOutputError``) otherwise.
    """

    async def classify(self, prompt: str, *, system: Optional[str] = None) -> Dict[str, Any]:
        ...


def parse_json_object(text: str) -> Dict[str, Any]:
    """Extract the first ``{...}`` block from model output."""
    raw = str(text or "")
    match = _JSON_BLOCK.search(raw)
    if not match:
        raise ClassifierOutputError("no JSON object in classifier output", raw=raw[:500])
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ClassifierOutputError(f"invalid JSON: {exc.msg}", raw=raw[:500]) from exc
    if not isinstance(parsed, dict):
        raise ClassifierOutputError("classifier output is not an object", raw=raw[:500])
    return parsed


class LLMTextClassifier:
    """TextClassifier backed by any BaseLLM provider."""

    def __init__(self, llm: BaseLLM) -> None:
        self._llm = llm

    async def classify(self, prompt: str, *, system: Optional[str] = None) -> Dict[str, Any]:
        try:
            content = await self._llm.achat(prompt, system_prompt=system, json_mode=True)
        except LLMError as exc:
            logger.warning("classifier_call_failed provider=%s error=%s", exc.provider, exc)
            raise TransientCollaboratorError(str(exc), source="classifier") from exc
        return parse_json_object(content)

    async def aclose(self) -> None:
        await self._llm.aclose()
