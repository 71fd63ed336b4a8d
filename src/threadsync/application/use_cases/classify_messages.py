"""Annotate newly stored messages and roll results up to their threads.

Classification is best-effort: a classifier failure is logged and the message
stays stored without annotations.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable

from loguru import logger

from threadsync.application.ports.classifier import Classifier
from threadsync.application.ports.thread_store import ThreadStore
from threadsync.domain.classification import rollup
from threadsync.domain.entities.message import Message
from threadsync.domain.entities.thread import ThreadKey


class ClassifyMessagesUseCase:
    def __init__(self, store: ThreadStore, classifier: Classifier, include_outbound: bool = False):
        self.store = store
        self.classifier = classifier
        self.include_outbound = include_outbound

    async def classify_new(self, new_messages: Iterable[tuple[ThreadKey, Message]]) -> int:
        """Classify the given (thread, message) pairs. Returns how many were annotated."""
        touched: dict[ThreadKey, int] = defaultdict(int)

        for key, message in new_messages:
            if not message.is_inbound and not self.include_outbound:
                continue

            try:
                classification = await self.classifier.classify(message.body, message.subject)
            except Exception as e:
                logger.warning(f"Classification failed for {message.message_id}: {e}")
                continue

            if classification is None:
                continue

            if await self.store.set_message_classification(key, message.message_id, classification):
                touched[key] += 1

        for key in touched:
            await self._rollup_thread(key)

        classified = sum(touched.values())
        if classified:
            logger.info(f"Classified {classified} messages across {len(touched)} threads")
        return classified

    async def _rollup_thread(self, key: ThreadKey) -> None:
        thread = await self.store.get_thread(key)
        if thread is None:
            return

        summary = rollup(m.classification for m in thread.messages if m.classification)
        if summary is not None:
            await self.store.set_thread_classification(key, summary)
