from __future__ import annotations
from typing import Optional, Protocol
from threadsync.domain.classification import MessageClassification

class Classifier(Protocol):
    async def classify(self, body: str, subject: str) -> Optional[MessageClassification]: ...
