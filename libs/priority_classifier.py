"""
Text-priority classifier for new complaints.

Maps a complaint description to Low / Medium / High. The keyword classifier
runs in-process; the HTTP classifier delegates to an external text
classification endpoint.
"""

import logging
import re
from typing import Dict, Iterable, Optional

import httpx
from httpx import AsyncClient, Timeout

from common.complaint_types import Priority
from libs.config import config

logger = logging.getLogger(__name__)

HIGH_PRIORITY_TERMS = (
    "accident",
    "collapse",
    "danger",
    "electrocution",
    "emergency",
    "exposed wire",
    "fire",
    "flood",
    "gas leak",
    "injur",
    "live wire",
    "sewage overflow",
    "unsafe",
)

LOW_PRIORITY_TERMS = (
    "cosmetic",
    "faded",
    "graffiti",
    "minor",
    "paint",
    "suggestion",
)


class PriorityClassificationError(Exception):
    """Raised when the classifier cannot produce a priority."""


class BasePriorityClassifier:
    """Base class for priority classifiers"""

    async def classify(self, description: str) -> Priority:
        """
        Classify a complaint description.

        Raises:
            PriorityClassificationError: If no priority can be determined
        """
        raise NotImplementedError("Classifier must implement classify()")

    async def close(self) -> None:
        return None


class KeywordPriorityClassifier(BasePriorityClassifier):
    """Rule-based classifier matching hazard keywords."""

    def __init__(
        self,
        high_terms: Iterable[str] = HIGH_PRIORITY_TERMS,
        low_terms: Iterable[str] = LOW_PRIORITY_TERMS,
    ):
        self._high = self._compile(high_terms)
        self._low = self._compile(low_terms)

    @staticmethod
    def _compile(terms: Iterable[str]) -> Optional[re.Pattern]:
        terms = [re.escape(t) for t in terms]
        if not terms:
            return None
        return re.compile(r"\b(" + "|".join(terms) + ")", re.IGNORECASE)

    async def classify(self, description: str) -> Priority:
        text = description or ""
        if self._high and self._high.search(text):
            return Priority.HIGH
        if self._low and self._low.search(text):
            return Priority.LOW
        return Priority.MEDIUM


class HttpPriorityClassifier(BasePriorityClassifier):
    """
    Client for an external classification endpoint.

    The endpoint receives ``{"text": description}`` and answers
    ``{"priority": "Low" | "Medium" | "High"}``.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[AsyncClient] = None):
        self.url = url
        self.client = client or AsyncClient(timeout=Timeout(timeout))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def classify(self, description: str) -> Priority:
        try:
            response = await self.client.post(self.url, json={"text": description})
            response.raise_for_status()
            data: Dict = response.json()
        except httpx.HTTPStatusError as e:
            raise PriorityClassificationError(
                f"Classifier returned {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise PriorityClassificationError(f"Classifier request error: {e}") from e
        except ValueError as e:
            raise PriorityClassificationError("Classifier returned invalid JSON") from e

        if not isinstance(data, dict):
            raise PriorityClassificationError("Classifier returned a non-object JSON body")

        raw = str(data.get("priority", "")).strip().capitalize()
        try:
            return Priority(raw)
        except ValueError as e:
            raise PriorityClassificationError(f"Unknown priority from classifier: {raw!r}") from e


_classifier: Optional[BasePriorityClassifier] = None


def get_priority_classifier() -> BasePriorityClassifier:
    """
    Get or create the process-wide classifier.

    Uses the HTTP classifier when PRIORITY_CLASSIFIER_URL is set, the keyword
    classifier otherwise.
    """
    global _classifier
    if _classifier is None:
        if config.PRIORITY_CLASSIFIER_URL:
            _classifier = HttpPriorityClassifier(
                config.PRIORITY_CLASSIFIER_URL, timeout=config.PRIORITY_CLASSIFIER_TIMEOUT
            )
        else:
            logger.info("PRIORITY_CLASSIFIER_URL not set, using keyword classifier")
            _classifier = KeywordPriorityClassifier()
    return _classifier
