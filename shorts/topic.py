"""Topic generation stage."""

import hashlib
import logging

from core.utils import slugify
from shorts.errors import StageError
from shorts.llm import LLMClient
from shorts.models import Topic

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You research short, concrete micro-documentary topics."

JSON_INSTRUCTIONS = """
Return ONLY a JSON object with the fields:
{"title": string, "description": string, "imageKeywords": string, "videoKeywords": string}
"""


def topic_id_for(title: str) -> str:
    """Deterministic topic id derived from the title."""
    return slugify(title, max_length=100) or hashlib.sha256(title.encode()).hexdigest()[:16]


async def generate_topic(
    llm: LLMClient,
    language: str,
    channel_id: str,
    prompt: str,
) -> Topic:
    logger.info("Generating topic for channel %s (%s)", channel_id, language)
    provider = await llm.provider()
    completion = await llm.complete_json(
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"{prompt}\n{JSON_INSTRUCTIONS}"},
        ],
        temperature=0.7 if provider.name == "ollama" else 0.9,
    )

    data = completion.data
    title = str(data.get("title") or "").strip()
    description = str(data.get("description") or "").strip()
    if not title or not description:
        raise StageError("Topic reply is missing title or description", "TOPIC_INVALID")

    image_keywords = str(data.get("imageKeywords") or title)
    topic = Topic(
        id=topic_id_for(title),
        title=title,
        description=description,
        image_keywords=image_keywords,
        video_keywords=str(data.get("videoKeywords") or image_keywords),
        tokens_used=completion.tokens_used,
    )
    logger.info("Topic generated: %s (%d tokens)", topic.title, topic.tokens_used)
    return topic
