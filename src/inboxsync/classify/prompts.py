"""Prompt shared by every AI provider."""

SYSTEM_PROMPT = (
    "You file captured notes into a task database. "
    "Reply with a single JSON object and nothing else."
)

CLASSIFICATION_PROMPT = """Classify this captured inbox note.

Note:
{content}

Return JSON:
{{
    "title": "short imperative title, at most 100 characters",
    "tags": ["lowercase", "topic", "tags"],
    "properties": {{
        "Type": "task|idea|bug|reference|question",
        "Priority": "low|medium|high"
    }}
}}

Return ONLY valid JSON, no markdown."""

# Upper bound on note text sent to a provider
MAX_PROMPT_CONTENT = 8000


def build_prompt(content: str) -> str:
    return CLASSIFICATION_PROMPT.format(content=content[:MAX_PROMPT_CONTENT])
