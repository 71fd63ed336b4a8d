"""Classification annotations and the thread-level rollup."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

SENTIMENTS = ("Positive", "Neutral", "Negative")
PRIORITY_RANK = {"High": 3, "Medium": 2, "Low": 1}
KEY_TOPIC_LIMIT = 5


@dataclass(frozen=True)
class MessageClassification:
    sentiment: Optional[str] = None
    topic: Optional[str] = None
    priority: Optional[str] = None
    keywords: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "sentiment": self.sentiment,
            "topic": self.topic,
            "priority": self.priority,
            "keywords": list(self.keywords),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MessageClassification:
        return cls(
            sentiment=data.get("sentiment"),
            topic=data.get("topic"),
            priority=data.get("priority"),
            keywords=tuple(data.get("keywords") or ()),
        )


@dataclass(frozen=True)
class ThreadClassification:
    dominant_sentiment: str = "Neutral"
    dominant_topic: Optional[str] = None
    highest_priority: str = "Low"
    key_topics: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dominant_sentiment": self.dominant_sentiment,
            "dominant_topic": self.dominant_topic,
            "highest_priority": self.highest_priority,
            "key_topics": list(self.key_topics),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ThreadClassification:
        return cls(
            dominant_sentiment=data.get("dominant_sentiment") or "Neutral",
            dominant_topic=data.get("dominant_topic"),
            highest_priority=data.get("highest_priority") or "Low",
            key_topics=tuple(data.get("key_topics") or ()),
        )


def rollup(classifications: Iterable[MessageClassification]) -> Optional[ThreadClassification]:
    """Aggregate per-message classifications into a thread classification.

    Ties keep first-seen order: sentiments in Positive/Neutral/Negative order,
    topics and keywords in message order.
    """
    items = [c for c in classifications if c is not None]
    if not items:
        return None

    sentiment_counts = Counter({s: 0 for s in SENTIMENTS})
    topic_counts: Counter[str] = Counter()
    keyword_counts: Counter[str] = Counter()
    highest = "Low"

    for c in items:
        if c.sentiment:
            sentiment_counts[c.sentiment] += 1
        if c.topic:
            topic_counts[c.topic] += 1
        if c.priority and PRIORITY_RANK.get(c.priority, 0) > PRIORITY_RANK[highest]:
            highest = c.priority
        keyword_counts.update(k for k in c.keywords if k)

    dominant_sentiment = sentiment_counts.most_common(1)[0][0]
    dominant_topic = topic_counts.most_common(1)[0][0] if topic_counts else None
    key_topics = tuple(k for k, _ in keyword_counts.most_common(KEY_TOPIC_LIMIT))

    return ThreadClassification(
        dominant_sentiment=dominant_sentiment,
        dominant_topic=dominant_topic,
        highest_priority=highest,
        key_topics=key_topics,
    )
