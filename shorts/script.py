"""Script generation stage."""

import logging

from shorts.errors import StageError
from shorts.llm import LLMClient
from shorts.models import Script, Topic

logger = logging.getLogger(__name__)

# Average narration pace used to estimate duration before synthesis.
WORDS_PER_SECOND = 2.5

JSON_INSTRUCTIONS = """
Return ONLY a JSON object on a single line with the fields:
{"title": string, "narrative": string, "description": string, "tags": [string]}
"""


def render_prompt(template: str, topic: Topic) -> str:
    return template.replace("${topic.title}", topic.title).replace(
        "${topic.description}", topic.description
    )


def _tags(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        return ()
    return tuple(tag.strip() for tag in map(str, value) if tag.strip())


async def generate_script(llm: LLMClient, topic: Topic, language: str, prompt: str) -> Script:
    logger.info("Generating %s script for topic %s", language, topic.id)
    completion = await llm.complete_json(
        [{"role": "user", "content": f"{render_prompt(prompt, topic)}\n{JSON_INSTRUCTIONS}"}],
        temperature=0.7,
    )

    data = completion.data
    narrative = str(data.get("narrative") or "").strip()
    if not narrative:
        raise StageError("Script reply has no narrative", "SCRIPT_INVALID")

    script = Script(
        topic=topic,
        language=language,
        title=str(data.get("title") or topic.title).strip(),
        narrative=narrative,
        description=str(data.get("description") or topic.description).strip(),
        tags=_tags(data.get("tags")),
        estimated_duration=round(len(narrative.split()) / WORDS_PER_SECOND),
        tokens_used=completion.tokens_used,
    )
    logger.info("Script generated (%s): %d words", language, script.word_count)
    return script
