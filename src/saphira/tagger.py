"""Rule-based content tagger.

规则打标：保留已有标签，加入上下文（兴趣）标签，再从分类、来源、
标题词和正文高频词中提取标签，最多 max_tags 个。
"""

import logging
from collections import Counter

from .models import ContentItem

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "for", "with", "about", "that", "this",
    "these", "those", "from", "to", "in", "on", "by", "at", "of",
    "have", "has", "had", "not", "are", "were", "was", "will", "would",
})

MIN_WORD_LENGTH = 5  # words of 4 chars or fewer are never tags
TOP_CONTENT_WORDS = 5

_PUNCTUATION = ".,;:!?()[]{}\"'`"


def _candidate_words(text: str) -> list[str]:
    words = []
    for raw in text.lower().split():
        word = raw.strip(_PUNCTUATION)
        if len(word) >= MIN_WORD_LENGTH and word not in STOP_WORDS:
            words.append(word)
    return words


def keywords_from_text(text: str, limit: int = TOP_CONTENT_WORDS) -> list[str]:
    """Most frequent non-stop words, ties in first-seen order."""
    return [word for word, _ in Counter(_candidate_words(text)).most_common(limit)]


class Tagger:
    """Assign tags to a content item."""

    def __init__(self, max_tags: int = 10) -> None:
        self.max_tags = max_tags

    def extract_tags(self, item: ContentItem, existing: list[str]) -> list[str]:
        tags: list[str] = []

        def _add(tag: str) -> None:
            if tag and tag not in existing and tag not in tags:
                tags.append(tag)

        if item.category:
            _add(item.category)
        if item.source_name:
            _add(item.source_name.lower())
        for word in _candidate_words(item.title):
            _add(word)
        for word in keywords_from_text(item.body):
            _add(word)
        return tags

    def process(self, item: ContentItem, context_tags: list[str] | None = None) -> ContentItem:
        """Return a copy of the item with enriched tags.

        打标失败时原样返回条目。
        """
        try:
            tags = list(item.tags)
            for tag in context_tags or []:
                if tag not in tags:
                    tags.append(tag)
            tags.extend(self.extract_tags(item, tags))
            tags = tags[: self.max_tags]
            logger.debug("Tagged %r: %s", item.title, ", ".join(tags))
            return item.model_copy(update={"tags": tags})
        except Exception:
            logger.exception("Tagging failed for %r", item.title)
            return item
