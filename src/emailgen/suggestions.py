"""
Parsing of language-model output into validated records.

Models are asked for JSON but often wrap it in Markdown fences or prose.
Anything that still fails to parse or validate raises InvalidSuggestionError.
"""

import json
import re
from typing import Any, List, Optional

import structlog
from pydantic import ValidationError

from emailgen.errors import InvalidSuggestionError
from emailgen.models import AssistantReply, CodeSuggestion, Modification

logger = structlog.get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def extract_json(text: str, opener: str = "{") -> Optional[Any]:
    """
    Returns the first JSON value found in text, or None if there is none.

    Tries the raw text, then the body of a Markdown fence, then the widest
    span between opener and its matching closing bracket.
    """
    closer = "}" if opener == "{" else "]"
    candidates = [text.strip()]

    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1))

    start, end = text.find(opener), text.rfind(closer)
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return None


def parse_modifications(items: Any) -> List[Modification]:
    if not isinstance(items, list):
        raise InvalidSuggestionError("'modifications' must be a list")

    modifications = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidSuggestionError(f"Modification {i} is not an object")
        try:
            modifications.append(Modification.model_validate(item))
        except ValidationError as exc:
            raise InvalidSuggestionError(f"Modification {i} is invalid: {exc}") from exc
    return modifications


def parse_assistant_reply(text: str) -> AssistantReply:
    """
    Parses an analyze-and-modify answer.

    Prose with no JSON at all is returned as a reply without modifications.
    JSON that is present but malformed is rejected.
    """
    data = extract_json(text)
    if data is None:
        if "{" in text and '"modifications"' in text:
            raise InvalidSuggestionError("Reply contains unparseable JSON")
        logger.info("Model reply had no JSON payload; returning prose only")
        return AssistantReply(response=text.strip(), modifications=[])

    if not isinstance(data, dict):
        raise InvalidSuggestionError("Reply JSON must be an object")

    response = data.get("response") or ""
    if not isinstance(response, str):
        raise InvalidSuggestionError("'response' must be a string")

    modifications = parse_modifications(data.get("modifications") or [])
    logger.debug(f"Parsed {len(modifications)} modifications from model reply")
    return AssistantReply(response=response, modifications=modifications)


def parse_code_suggestions(text: str) -> List[CodeSuggestion]:
    """
    Parses a suggestions answer. Accepts either a bare JSON array or an object
    with a "suggestions" array.
    """
    data = extract_json(text, opener="[")
    if data is None:
        data = extract_json(text)
    if isinstance(data, dict):
        data = data.get("suggestions")
    if not isinstance(data, list):
        raise InvalidSuggestionError("Model did not return a list of suggestions")

    suggestions = []
    for i, item in enumerate(data):
        if isinstance(item, dict) and "id" not in item:
            item = {**item, "id": str(i + 1)}
        try:
            suggestions.append(CodeSuggestion.model_validate(item))
        except ValidationError as exc:
            raise InvalidSuggestionError(f"Suggestion {i} is invalid: {exc}") from exc
    return suggestions
