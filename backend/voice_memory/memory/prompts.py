from __future__ import annotations

SKIP_SENTINEL = "NO_OP_SKIP_TURN"

FLASH_PROMPT_TEMPLATE = """You maintain the short-term memory of a voice assistant.
Read the recent dialogue and pick out facts about the user that are worth
remembering for later turns: preferences, plans, personal details, names,
commitments. Ignore greetings, filler and anything the assistant said about itself.

Dialogue:
{dialogue_history}

Answer with a JSON array only. One object per candidate fact:
[{{"important": true, "topic": "<one or two words>", "memory": "<fact in one sentence>"}}]
Use "important": false for candidates that are trivial, and "topic": "n/a" when no
topic fits. If nothing in the dialogue is worth remembering, answer exactly
{skip_sentinel}"""

LONG_TERM_PROMPT_TEMPLATE = """You maintain the long-term memory of a voice assistant.
Topic: {topic}

Previous summary:
{previous_long_term}

Recent dialogue:
{dialogue_lines}

Write an updated summary of the conversation so far. Keep every durable fact from
the previous summary unless the dialogue contradicts it, add what is new, and drop
small talk. Answer with the summary text only, at most a few short paragraphs."""


def render_flash_prompt(dialogue_history: str) -> str:
    return FLASH_PROMPT_TEMPLATE.format(
        dialogue_history=dialogue_history, skip_sentinel=SKIP_SENTINEL
    )


def render_long_term_prompt(
    *, dialogue_lines: str, previous_long_term: str, topic: str
) -> str:
    return LONG_TERM_PROMPT_TEMPLATE.format(
        topic=topic,
        previous_long_term=previous_long_term or "(none)",
        dialogue_lines=dialogue_lines or "(none)",
    )
