"""
Image analysis adapters.

Turns one stored damage photo into a DamageAnalysis (severity, confidence,
damage types). The mock backend is deterministic per reference so repeated
runs over the same upload produce the same triage.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List
import hashlib

from app.ai.llm import VisionService
from app.core.constants import (
    Severity, SEVERE_KEYWORDS, MODERATE_KEYWORDS, MINOR_KEYWORDS,
    VEHICLE_OBJECTS, DAMAGE_TYPE_KEYWORDS, GENERAL_DAMAGE,
)
from app.core.exceptions import AnalysisError, StoreError
from app.core.logging import get_logger
from app.models.claim import DamageAnalysis, ImageRef
from app.services.object_store import ObjectStore

logger = get_logger(__name__)


# ===================
# Keyword Rules
# ===================

def determine_severity(description: str, tags: Iterable[str], objects: Iterable[str]) -> Severity:
    """Severe keywords beat moderate beat minor; an unlabelled vehicle counts as moderate."""
    objects = list(objects)
    text = f"{description} {' '.join(tags)} {' '.join(objects)}".lower()

    if any(keyword in text for keyword in SEVERE_KEYWORDS):
        return Severity.SEVERE
    if any(keyword in text for keyword in MODERATE_KEYWORDS):
        return Severity.MODERATE
    if any(keyword in text for keyword in MINOR_KEYWORDS):
        return Severity.MINOR

    if any(obj.lower() in VEHICLE_OBJECTS for obj in objects):
        return Severity.MODERATE
    return Severity.MINOR


def extract_damage_types(tags: Iterable[str], objects: Iterable[str]) -> List[str]:
    items = [item.lower() for item in [*tags, *objects]]
    damage_types = [
        damage_type
        for damage_type, keywords in DAMAGE_TYPE_KEYWORDS.items()
        if any(keyword in item for keyword in keywords for item in items)
    ]
    return damage_types or [GENERAL_DAMAGE]


# ===================
# Adapters
# ===================

class ImageAnalyzer(ABC):
    """Base class for damage analysis backends."""

    @abstractmethod
    def analyze(self, image: ImageRef) -> DamageAnalysis:
        """
        Assess a single stored image.

        Raises AnalysisError when the backend fails; callers treat that as
        "no analysis for this image".
        """
        pass


class MockImageAnalyzer(ImageAnalyzer):
    """Deterministic stand-in used when no vision backend is configured."""

    _severities = [Severity.MINOR, Severity.MODERATE, Severity.SEVERE]
    _damage_types = ["dent", "scratch", "paint damage", "crack"]

    def analyze(self, image: ImageRef) -> DamageAnalysis:
        digest = hashlib.sha256(image.reference.encode("utf-8")).digest()

        severity = self._severities[digest[0] % len(self._severities)]
        confidence = round(0.75 + (digest[1] / 255) * 0.2, 3)
        count = digest[2] % 3 + 1
        start = digest[3] % len(self._damage_types)
        damage_types = [
            self._damage_types[(start + i) % len(self._damage_types)] for i in range(count)
        ]

        return DamageAnalysis(
            severity=severity,
            confidence=confidence,
            damage_types=damage_types,
            description=f"Mock analysis: {severity.value} vehicle damage",
            is_mock=True,
        )


class VisionImageAnalyzer(ImageAnalyzer):
    """Asks a multimodal LLM to describe the photo, then applies the keyword rules."""

    def __init__(self, vision: VisionService, object_store: ObjectStore):
        self.vision = vision
        self.object_store = object_store

    def analyze(self, image: ImageRef) -> DamageAnalysis:
        try:
            data = self.object_store.read(image.reference)
        except (StoreError, NotImplementedError) as e:
            raise AnalysisError(f"could not read image: {e}", reference=image.reference) from e

        result = self.vision.describe_image(data, image.content_type)

        description = str(result.get("description") or "")
        tags = [str(t) for t in result.get("tags") or []]
        objects = [str(o) for o in result.get("objects") or []]
        try:
            confidence = float(result.get("confidence", 0.7))
        except (TypeError, ValueError):
            confidence = 0.7
        confidence = min(max(confidence, 0.0), 1.0)

        return DamageAnalysis(
            severity=determine_severity(description, tags, objects),
            confidence=confidence,
            damage_types=extract_damage_types(tags, objects),
            description=description,
        )


def build_image_analyzer(config, object_store: ObjectStore) -> ImageAnalyzer:
    """Pick the analyzer named by IMAGE_ANALYZER."""
    name = config.IMAGE_ANALYZER.lower()
    if name == "vision":
        return VisionImageAnalyzer(VisionService.from_settings(config), object_store)
    if name == "mock":
        logger.warning("Using mock image analysis; severities are synthetic")
        return MockImageAnalyzer()
    raise ValueError(f"Unknown image analyzer: {name}")
