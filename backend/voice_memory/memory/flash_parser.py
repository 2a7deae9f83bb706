"""Parsing of flash-extraction completions.

Language models do not reliably follow the requested JSON shape, so the output
is tried against an ordered list of parse attempts. Each attempt is a pure
function returning a :class:`ParseOutcome`; the first success wins.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

NOT_APPLICABLE_TOPIC = "n/a"

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?")
_STRING_LITERAL_PATTERN = re.compile(r'"(?:[^"\\]|\\.)*"')
_HALF_QUOTED_KEY_PATTERN = re.compile(r'([,{]\s*)([A-Za-z_][A-Za-z0-9_]*)"\s*:')
_BARE_KEY_PATTERN = re.compile(r"([,{]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:")
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")
_UNQUOTED_MEMORY_PATTERN = re.compile(
    r'("memory"\s*:\s*)(?!["\[{]|null\b|true\b|false\b)([^,}\]]+?)(\s*[,}\]])'
)
_QUOTED_ITEM_PATTERN = re.compile(
    r'\{\s*"?important"?\s*:\s*(true|false)\s*,\s*"?topic"?\s*:\s*"([^"]*)"\s*,'
    r'\s*"?memory"?\s*:\s*"((?:[^"\\]|\\.)*)"\s*\}',
    re.IGNORECASE,
)
_UNQUOTED_ITEM_PATTERN = re.compile(
    r'\{\s*"?important"?\s*:\s*(true|false)\s*,\s*"?topic"?\s*:\s*"?([^",}]*)"?\s*,'
    r'\s*"?memory"?\s*:\s*([^"}][^}]*?)\s*\}',
    re.IGNORECASE,
)
_FACT_TOPIC_PATTERN = re.compile(
    r"Fact:\s*(.*?)\s*\.?\s*Topic:\s*(.*?)(?=\s*(?:[-*•]\s*)?Fact:|$)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class FlashCandidate:
    """A fact extracted from the completion, not yet embedded."""

    text: str
    topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class ParseOptions:
    max_fallback_items: int = 4
    max_topics: int = 3


@dataclass(frozen=True)
class ParseOutcome:
    """Tagged result of one parse attempt."""

    ok: bool
    strategy: str
    candidates: tuple[FlashCandidate, ...] = ()
    reason: str = ""

    @classmethod
    def success(cls, strategy: str, candidates: Sequence[FlashCandidate]) -> "ParseOutcome":
        return cls(ok=True, strategy=strategy, candidates=tuple(candidates))

    @classmethod
    def failure(cls, strategy: str, reason: str) -> "ParseOutcome":
        return cls(ok=False, strategy=strategy, reason=reason)


ParseAttempt = Callable[[str, ParseOptions], ParseOutcome]


def parse_strict_json(output: str, options: ParseOptions) -> ParseOutcome:
    """Parse fenced or chatty output as a JSON array or a single object."""

    for candidate in _json_candidates(output):
        payload = _load_json(candidate)
        if payload is None:
            continue
        items = _payload_items(payload)
        if items is None:
            return ParseOutcome.failure("json", "payload is neither an array nor an object")
        return ParseOutcome.success("json", _candidates_from_items(items, options))
    return ParseOutcome.failure("json", "no JSON document found")


def parse_repaired_json(output: str, options: ParseOptions) -> ParseOutcome:
    """Quote bare ``memory`` values and fix common JSON slips, then retry.

    When the document still does not load, item objects are matched one by one.
    """

    cleaned = _strip_fences(output)
    repaired = _repair_json_text(cleaned)
    for candidate in _json_candidates(repaired):
        for variant in (candidate, f"[{candidate}]"):
            payload = _load_json(variant)
            items = _payload_items(payload) if payload is not None else None
            if items is not None:
                return ParseOutcome.success("repaired_json", _candidates_from_items(items, options))

    matches: list[tuple[int, dict[str, Any]]] = []
    quoted_spans: list[tuple[int, int]] = []
    for match in _QUOTED_ITEM_PATTERN.finditer(cleaned):
        quoted_spans.append(match.span())
        matches.append(
            (
                match.start(),
                {
                    "important": match.group(1).lower() == "true",
                    "topic": match.group(2),
                    "memory": _unescape(match.group(3)),
                },
            )
        )
    for match in _UNQUOTED_ITEM_PATTERN.finditer(cleaned):
        if any(start <= match.start() < end for start, end in quoted_spans):
            continue
        matches.append(
            (
                match.start(),
                {
                    "important": match.group(1).lower() == "true",
                    "topic": match.group(2).strip(),
                    "memory": match.group(3).strip().rstrip(",").strip(),
                },
            )
        )
    if not matches:
        return ParseOutcome.failure("repaired_json", "no memory objects matched")
    matches.sort(key=lambda row: row[0])
    items = [item for _, item in matches]
    return ParseOutcome.success("pattern", _candidates_from_items(items, options))


def parse_fact_topic(output: str, options: ParseOptions) -> ParseOutcome:
    """Last resort: ``Fact: ... Topic: ...`` pairs, capped at ``max_fallback_items``."""

    normalized = " ".join(output.split())
    candidates: list[FlashCandidate] = []
    for match in _FACT_TOPIC_PATTERN.finditer(normalized):
        if len(candidates) >= options.max_fallback_items:
            break
        text = match.group(1).strip()
        if not text:
            continue
        topic = match.group(2).strip().rstrip(".,;").strip()
        candidates.append(FlashCandidate(text=text, topics=_fold_topics(topic, options)))
    if not candidates:
        return ParseOutcome.failure("fact_topic", "no Fact/Topic pairs found")
    return ParseOutcome.success("fact_topic", candidates)


PARSE_ATTEMPTS: tuple[ParseAttempt, ...] = (
    parse_strict_json,
    parse_repaired_json,
    parse_fact_topic,
)


def parse_flash_output(
    output: str,
    options: Optional[ParseOptions] = None,
    attempts: Sequence[ParseAttempt] = PARSE_ATTEMPTS,
) -> ParseOutcome:
    """Run the parse attempts in order and return the first success."""

    opts = options or ParseOptions()
    reasons: list[str] = []
    for attempt in attempts:
        outcome = attempt(output, opts)
        if outcome.ok:
            return outcome
        reasons.append(f"{outcome.strategy}: {outcome.reason}")
    return ParseOutcome.failure("none", "; ".join(reasons) or "no parse attempts")


def _strip_fences(output: str) -> str:
    return _FENCE_PATTERN.sub("", str(output or "")).strip()


def _json_candidates(output: str) -> list[str]:
    cleaned = _strip_fences(output)
    if not cleaned:
        return []
    candidates = [cleaned]
    extracted = _extract_json_span(cleaned)
    if extracted and extracted != cleaned:
        candidates.append(extracted)
    return candidates


def _extract_json_span(content: str) -> str:
    starts = [index for index in (content.find("["), content.find("{")) if index != -1]
    ends = [index for index in (content.rfind("]"), content.rfind("}")) if index != -1]
    if not starts or not ends:
        return ""
    start, end = min(starts), max(ends)
    if end <= start:
        return ""
    return content[start : end + 1].strip()


def _load_json(content: str) -> Any:
    try:
        return json.loads(content)
    except (json.JSONDecodeError, ValueError):
        return None


def _payload_items(payload: Any) -> Optional[list[Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        return [payload]
    return None


def _repair_json_text(content: str) -> str:
    # Runs on the whole text: a key missing its opening quote throws off string tokenizing.
    text = _HALF_QUOTED_KEY_PATTERN.sub(r'\1"\2":', content)
    text = _sub_outside_strings(_BARE_KEY_PATTERN, r'\1"\2":', text)
    text = _sub_outside_strings(_TRAILING_COMMA_PATTERN, r"\1", text)
    return _UNQUOTED_MEMORY_PATTERN.sub(
        lambda match: f"{match.group(1)}{json.dumps(match.group(2).strip())}{match.group(3)}",
        text,
    )


def _sub_outside_strings(pattern: re.Pattern[str], replacement: str, content: str) -> str:
    """Apply ``pattern`` to the text between JSON string literals only."""

    parts: list[str] = []
    position = 0
    for literal in _STRING_LITERAL_PATTERN.finditer(content):
        parts.append(pattern.sub(replacement, content[position : literal.start()]))
        parts.append(literal.group(0))
        position = literal.end()
    parts.append(pattern.sub(replacement, content[position:]))
    return "".join(parts)


def _candidates_from_items(items: Sequence[Any], options: ParseOptions) -> list[FlashCandidate]:
    candidates: list[FlashCandidate] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        if item.get("important") is not True:
            continue
        memory = item.get("memory")
        if not isinstance(memory, str) or not memory.strip():
            continue
        candidates.append(
            FlashCandidate(text=memory.strip(), topics=_fold_topics(item.get("topic"), options))
        )
    return candidates


def _fold_topics(raw_topic: Any, options: ParseOptions) -> tuple[str, ...]:
    if isinstance(raw_topic, str):
        values = [raw_topic]
    elif isinstance(raw_topic, list):
        values = [value for value in raw_topic if isinstance(value, str)]
    else:
        return ()
    topics: list[str] = []
    for value in values:
        topic = value.strip()
        if not topic or topic.casefold() == NOT_APPLICABLE_TOPIC or topic in topics:
            continue
        topics.append(topic)
    return tuple(topics[: options.max_topics])


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value
