from __future__ import annotations

from typing import Optional

from threadsync.domain.classification import MessageClassification


class NullClassifier:
    """Classifier used when no classification backend is configured."""

    async def classify(self, body: str, subject: str) -> Optional[MessageClassification]:
        return None
