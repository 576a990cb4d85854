"""
Shared fixtures: temp-dir stores, scripted adapters and a wired ClaimService.

Adapters are driven by the uploaded file name so each test can say which
image fails where:
    "*fail-store*"    -> object store raises StoreError
    "*fail-analysis*" -> analyzer raises AnalysisError
    "severe_*" / "moderate_*" / "minor_*" -> analyzer returns that severity
"""

import asyncio
import threading
from datetime import date
from pathlib import Path
from typing import List, Set

import pytest

from app.core.config import Settings
from app.core.constants import Severity
from app.core.exceptions import AnalysisError, DeliveryError, StoreError
from app.models.base import generate_id
from app.models.claim import ClaimCreate, DamageAnalysis, ImageRef, ImageUpload, VehicleInfo
from app.models.user import User
from app.services.claim_service import ClaimService
from app.services.image_analysis import ImageAnalyzer
from app.services.notifications import DeliveryResult, Notifier
from app.services.object_store import LocalObjectStore, StoredImage
from app.storage.claim_store import ClaimStore
from app.storage.user_store import UserStore


# ============================================================================
# Fake Adapters
# ============================================================================


class ScriptedObjectStore(LocalObjectStore):
    """Local store that fails on demand."""

    def __init__(self, upload_dir: str):
        super().__init__(upload_dir, "http://testserver")
        self.failing_deletes: Set[str] = set()
        self.deleted: List[str] = []
        self._lock = threading.Lock()

    def store(self, data: bytes, original_name: str, mime_type: str) -> StoredImage:
        if "fail-store" in original_name:
            raise StoreError("bucket unavailable", filename=original_name)
        return super().store(data, original_name, mime_type)

    def delete(self, reference: str) -> bool:
        if reference in self.failing_deletes:
            return False
        ok = super().delete(reference)
        with self._lock:
            self.deleted.append(reference)
        return ok


class ScriptedAnalyzer(ImageAnalyzer):
    """Severity comes from the file name prefix."""

    def __init__(self):
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def analyze(self, image: ImageRef) -> DamageAnalysis:
        with self._lock:
            self.calls.append(image.original_name)
        if "fail-analysis" in image.original_name:
            raise AnalysisError("vision backend timed out", reference=image.reference)

        severity = Severity.MINOR
        for candidate in Severity:
            if image.original_name.startswith(candidate.value):
                severity = candidate
        return DamageAnalysis(
            severity=severity,
            confidence=0.9,
            damage_types=["dent"],
            description=f"{severity.value} damage",
        )


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[dict] = []
        self._lock = threading.Lock()

    def send(self, address: str, subject: str, body: str) -> DeliveryResult:
        if self.fail:
            raise DeliveryError("smtp relay refused", address=address)
        with self._lock:
            self.sent.append({"address": address, "subject": subject, "body": body})
        return DeliveryResult(success=True, service="recording")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DEBUG=False,
        DATA_DIR=str(tmp_path / "data"),
        UPLOAD_DIR=str(tmp_path / "uploads"),
        ADMIN_EMAIL=None,
    )


@pytest.fixture
def claim_store(settings) -> ClaimStore:
    return ClaimStore(f"{settings.DATA_DIR}/claims")


@pytest.fixture
def user_store(settings) -> UserStore:
    return UserStore(f"{settings.DATA_DIR}/users")


@pytest.fixture
def object_store(settings) -> ScriptedObjectStore:
    return ScriptedObjectStore(settings.UPLOAD_DIR)


@pytest.fixture
def analyzer() -> ScriptedAnalyzer:
    return ScriptedAnalyzer()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def user(user_store) -> User:
    return user_store.create(User(
        user_id=generate_id("user"),
        email="driver@example.com",
        name="Dana Driver",
    ))


@pytest.fixture
def service(settings, claim_store, user_store, object_store, analyzer, notifier):
    svc = ClaimService(
        claim_store=claim_store,
        user_store=user_store,
        object_store=object_store,
        analyzer=analyzer,
        notifier=notifier,
        config=settings,
    )
    yield svc
    asyncio.run(svc.close())


def make_payload(user_id: str, **overrides) -> ClaimCreate:
    data = dict(
        user_id=user_id,
        vehicle_info=VehicleInfo(make="Toyota", model="Corolla", year=2019, license_plate="ABC123"),
        incident_description="Rear-ended at a stop light",
        incident_date=date(2024, 5, 2),
        location="Main St & 3rd Ave",
    )
    data.update(overrides)
    return ClaimCreate(**data)


def make_image(name: str, content_type: str = "image/jpeg", size: int = 64) -> ImageUpload:
    return ImageUpload(filename=name, content_type=content_type, data=b"\xff" * size)
