# app/services/claim_service.py
"""Claim lifecycle: intake, triage, status transitions and removal."""

from typing import Dict, List, Optional, Set, Tuple
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import asynccontextmanager
import asyncio
import math
import threading

from app.core.config import Settings, settings as default_settings
from app.core.constants import (
    ClaimStatus, Severity, CLAIM_NUMBER_ATTEMPTS, DEFAULT_ACTOR,
)
from app.core.exceptions import (
    ClaimNotFoundError, ClaimValidationError, DuplicateEntityError,
    StaleClaimError, StorageUnavailableError, UserNotFoundError,
)
from app.core.logging import get_logger
from app.models.base import generate_claim_number, generate_id
from app.models.claim import (
    Claim, ClaimCreate, ClaimListResponse, DamageAnalysis, DeleteClaimResponse,
    ImageRef, ImageUpload,
)
from app.services.aggregator import SeverityAggregator
from app.services.image_analysis import ImageAnalyzer
from app.services.notifications import NotificationTemplates, Notifier
from app.services.object_store import ObjectStore
from app.services.status_machine import apply_transition, validate_transition
from app.storage.claim_store import ClaimStore
from app.storage.user_store import UserStore

logger = get_logger(__name__)

# Re-reads allowed when a compare-and-set loses to another writer
MAX_UPDATE_ATTEMPTS = 3


class _ClaimLock:
    """An asyncio lock plus the number of requests holding or waiting on it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class ClaimService:
    """
    Sole writer of claim status, severity, estimate and analyses.

    Collaborators are injected once at startup. Blocking adapter calls run
    on the service's thread pool so per-image work can fan out.
    """

    def __init__(
        self,
        claim_store: ClaimStore,
        user_store: UserStore,
        object_store: ObjectStore,
        analyzer: ImageAnalyzer,
        notifier: Notifier,
        aggregator: Optional[SeverityAggregator] = None,
        templates: Optional[NotificationTemplates] = None,
        config: Optional[Settings] = None,
        max_workers: int = 8
    ):
        self.config = config or default_settings
        self.claims = claim_store
        self.users = user_store
        self.object_store = object_store
        self.analyzer = analyzer
        self.notifier = notifier
        self.aggregator = aggregator or SeverityAggregator.from_settings(self.config)
        self.templates = templates or NotificationTemplates(self.config.FROM_NAME)

        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="claims")
        self._claim_locks: Dict[str, _ClaimLock] = {}
        self._pending_notifications: Set[Future] = set()
        self._notify_lock = threading.Lock()

    # ===================
    # Submission
    # ===================

    def validate_images(self, images: List[ImageUpload]):
        """Boundary checks on count, size and content type."""
        if len(images) > self.config.MAX_IMAGES_PER_CLAIM:
            raise ClaimValidationError(
                f"At most {self.config.MAX_IMAGES_PER_CLAIM} images are allowed",
                field="images"
            )
        for image in images:
            if not (image.content_type or "").startswith(self.config.ALLOWED_IMAGE_PREFIX):
                raise ClaimValidationError(
                    f"Only image files are allowed: {image.filename}", field="images"
                )
            if image.size > self.config.max_image_size_bytes:
                raise ClaimValidationError(
                    f"Image {image.filename} exceeds {self.config.MAX_IMAGE_SIZE_MB}MB",
                    field="images"
                )

    async def submit_claim(self, payload: ClaimCreate, images: List[ImageUpload]) -> Claim:
        """
        Store and analyze each image, aggregate, persist as pending, notify.

        Per-image failures are logged and skipped. Only a failure to persist
        the claim record is surfaced.
        """
        self.validate_images(images)

        user = self.users.find_by_id(payload.user_id)
        if user is None:
            raise UserNotFoundError(payload.user_id)

        outcomes = await asyncio.gather(
            *(self._process_image(index, image) for index, image in enumerate(images))
        )

        image_refs: List[ImageRef] = []
        analyses: List[DamageAnalysis] = []
        for ref, analysis in outcomes:
            if ref is None:
                continue
            image_refs.append(ref)
            analyses.append(analysis)

        triage = self.aggregator.aggregate(analyses)
        if images and triage.analyses_used < len(images):
            logger.warning(
                f"Only {triage.analyses_used}/{len(images)} images analyzed for user {user.user_id}"
            )

        claim = self._create_with_unique_number(payload, image_refs, analyses, triage)
        logger.info(
            f"Claim {claim.claim_number} submitted: severity={claim.severity.value} "
            f"estimate={claim.estimated_amount}"
        )

        subject, body = self.templates.claim_submitted(claim.claim_number, user.name)
        self._notify(user.email, subject, body)
        if self.config.ADMIN_EMAIL:
            subject, body = self.templates.admin_new_claim(claim.claim_number, user.email)
            self._notify(self.config.ADMIN_EMAIL, subject, body)

        return claim

    async def _process_image(
        self, index: int, image: ImageUpload
    ) -> Tuple[Optional[ImageRef], Optional[DamageAnalysis]]:
        """Store then analyze one image; failures stay inside this image."""
        loop = asyncio.get_running_loop()

        try:
            stored = await loop.run_in_executor(
                self._executor,
                self.object_store.store, image.data, image.filename, image.content_type
            )
        except Exception as e:
            logger.error(f"Image {index} ({image.filename}) could not be stored: {e}")
            return None, None

        ref = ImageRef(
            reference=stored.reference,
            url=stored.url,
            original_name=image.filename,
            content_type=image.content_type,
            size=stored.size,
        )

        try:
            analysis = await loop.run_in_executor(self._executor, self.analyzer.analyze, ref)
        except Exception as e:
            logger.error(f"Image {index} ({image.filename}) could not be analyzed: {e}")
            return ref, DamageAnalysis.failed(str(e))

        return ref, analysis

    def _create_with_unique_number(self, payload, image_refs, analyses, triage) -> Claim:
        last_error: Optional[Exception] = None
        for attempt in range(1, CLAIM_NUMBER_ATTEMPTS + 1):
            claim = Claim(
                claim_id=generate_id("claim"),
                claim_number=generate_claim_number(self.config.CLAIM_NUMBER_PREFIX),
                user_id=payload.user_id,
                vehicle_info=payload.vehicle_info,
                incident_description=payload.incident_description,
                incident_date=payload.incident_date,
                location=payload.location,
                image_refs=image_refs,
                damage_analyses=analyses,
                severity=triage.severity,
                estimated_amount=triage.estimated_amount,
                status=ClaimStatus.PENDING,
            )
            try:
                return self.claims.create(claim)
            except DuplicateEntityError as e:
                logger.warning(f"Claim number collision on attempt {attempt}: {claim.claim_number}")
                last_error = e

        raise StorageUnavailableError(f"could not allocate a unique claim number: {last_error}")

    # ===================
    # Status Transitions
    # ===================

    @asynccontextmanager
    async def _claim_lock(self, claim_id: str):
        """
        Hold the per-claim lock. The entry lives only while some request
        holds or waits on it, so the map never outgrows in-flight work.
        """
        entry = self._claim_locks.get(claim_id)
        if entry is None:
            entry = self._claim_locks[claim_id] = _ClaimLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._claim_locks[claim_id]

    async def update_status(
        self,
        claim_id: str,
        new_status: ClaimStatus,
        review_notes: Optional[str] = None,
        final_amount: Optional[float] = None,
        actor: str = DEFAULT_ACTOR
    ) -> Claim:
        """
        Apply one admin transition.

        Updates to the same claim are serialized; the store write is a
        compare-and-set on the status that was read, so a concurrent writer
        is always observed and the transition is re-evaluated against it.
        """
        new_status = ClaimStatus(new_status)
        if final_amount is not None and final_amount < 0:
            raise ClaimValidationError("finalAmount must be >= 0", field="finalAmount")

        async with self._claim_lock(claim_id):
            for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
                claim = self.claims.get(claim_id)
                if claim is None:
                    raise ClaimNotFoundError(claim_id)

                expected_status = claim.status
                apply_transition(claim, new_status, actor=actor, notes=review_notes)

                if review_notes:
                    claim.review_notes = review_notes
                if final_amount is not None:
                    if new_status == ClaimStatus.REJECTED:
                        logger.warning(f"Ignoring finalAmount on rejected claim {claim.claim_number}")
                    else:
                        claim.final_amount = final_amount

                try:
                    updated = self.claims.update(claim, expected_status)
                    break
                except StaleClaimError as e:
                    logger.warning(f"Concurrent update on {claim_id} (attempt {attempt}): {e.message}")
            else:
                current = self.claims.get(claim_id)
                if current is None:
                    raise ClaimNotFoundError(claim_id)
                validate_transition(current.status, new_status)
                raise StorageUnavailableError(f"claim {claim_id} kept changing during update")

        logger.info(
            f"Claim {updated.claim_number}: {expected_status.value} -> {new_status.value} by {actor}"
        )

        user = self.users.find_by_id(updated.user_id, active_only=False)
        if user is None:
            logger.warning(f"No user {updated.user_id} to notify for claim {updated.claim_number}")
        else:
            subject, body = self.templates.status_changed(
                updated.claim_number, new_status, user.name,
                review_notes=review_notes, final_amount=updated.final_amount
            )
            self._notify(user.email, subject, body)

        return updated

    # ===================
    # Deletion
    # ===================

    async def delete_claim(self, claim_id: str) -> DeleteClaimResponse:
        """Remove the record, then best-effort remove each stored image."""
        async with self._claim_lock(claim_id):
            claim = self.claims.get(claim_id)
            if claim is None:
                raise ClaimNotFoundError(claim_id)
            self.claims.delete(claim_id)

        loop = asyncio.get_running_loop()
        results = await asyncio.gather(
            *(
                loop.run_in_executor(self._executor, self._delete_image, ref.reference)
                for ref in claim.image_refs
            )
        )
        deleted = sum(1 for ok in results if ok)
        failed = len(results) - deleted
        if failed:
            logger.warning(f"Claim {claim.claim_number} deleted; {failed} image(s) left in object store")
        else:
            logger.info(f"Claim {claim.claim_number} deleted with {deleted} image(s)")

        return DeleteClaimResponse(
            message="Claim deleted successfully",
            claim_id=claim_id,
            images_deleted=deleted,
            images_failed=failed,
        )

    def _delete_image(self, reference: str) -> bool:
        try:
            ok = self.object_store.delete(reference)
        except Exception as e:
            logger.error(f"Object store raised deleting {reference}: {e}")
            return False
        if not ok:
            logger.error(f"Failed to delete image {reference}")
        return ok

    # ===================
    # Reads
    # ===================

    def get_claim(self, claim_id: str) -> Claim:
        claim = self.claims.get(claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)
        return claim

    def list_user_claims(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None
    ) -> ClaimListResponse:
        return self._page(page, limit, user_id=user_id, status=status)

    def list_all_claims(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        severity: Optional[str] = None
    ) -> ClaimListResponse:
        return self._page(page, limit, status=status, severity=severity)

    def _page(self, page, limit, user_id=None, status=None, severity=None) -> ClaimListResponse:
        status_filter = _parse_filter(ClaimStatus, status, "status")
        severity_filter = _parse_filter(Severity, severity, "severity")
        claims, total = self.claims.search(
            user_id=user_id,
            status=status_filter,
            severity=severity_filter,
            page=page,
            limit=limit,
        )
        return ClaimListResponse(
            claims=claims,
            total_pages=math.ceil(total / limit) if limit else 0,
            current_page=page,
            total=total,
        )

    def get_statistics(self) -> dict:
        return self.claims.get_statistics()

    # ===================
    # Notifications
    # ===================

    def _notify(self, address: str, subject: str, body: str):
        """Fire-and-forget send; the outcome only ever reaches the log."""
        future = self._executor.submit(self.notifier.send, address, subject, body)
        with self._notify_lock:
            self._pending_notifications.add(future)
        future.add_done_callback(lambda f, to=address: self._notification_done(f, to))

    def _notification_done(self, future: Future, address: str):
        with self._notify_lock:
            self._pending_notifications.discard(future)
        if future.cancelled():
            logger.warning(f"Notification to {address} was cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Failed to send notification to {address}: {error}")

    async def drain_notifications(self):
        """Wait for in-flight notifications; used at shutdown and in tests."""
        with self._notify_lock:
            pending = list(self._pending_notifications)
        if pending:
            await asyncio.gather(
                *(asyncio.wrap_future(f) for f in pending), return_exceptions=True
            )

    async def close(self):
        await self.drain_notifications()
        self._executor.shutdown(wait=True)


def _parse_filter(enum_cls, value: Optional[str], field: str):
    if value is None or value == "" or value == "all":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ClaimValidationError(f"Invalid {field}: {value}", field=field)
