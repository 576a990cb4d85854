"""
Tests for the claim lifecycle manager.

Covers intake with partial failures, the status state machine as seen
through the service, concurrent admin actions and deletion.
"""

import asyncio

import pytest

from app.core.constants import AnalysisStatus, ClaimStatus, Severity
from app.core.exceptions import (
    ClaimNotFoundError, ClaimValidationError, DuplicateEntityError,
    InvalidClaimStatusTransition, StorageUnavailableError, UserNotFoundError,
)
from app.services import claim_service as claim_service_module
from conftest import RecordingNotifier, make_image, make_payload


def submit(service, user_id, images):
    async def scenario():
        claim = await service.submit_claim(make_payload(user_id), images)
        await service.drain_notifications()
        return claim

    return asyncio.run(scenario())


# ============================================================================
# Submission
# ============================================================================


class TestSubmitClaim:

    def test_all_images_analyzed(self, service, user, claim_store):
        images = [make_image("minor_front.jpg"), make_image("severe_side.jpg"), make_image("moderate_rear.jpg")]

        claim = submit(service, user.user_id, images)

        assert claim.status == ClaimStatus.PENDING
        assert claim.severity == Severity.SEVERE
        assert claim.estimated_amount == 5000
        assert [r.original_name for r in claim.image_refs] == [i.filename for i in images]
        assert [a.severity for a in claim.damage_analyses] == [
            Severity.MINOR, Severity.SEVERE, Severity.MODERATE
        ]
        assert claim.status_history == []
        assert claim_store.get(claim.claim_id) == claim

    def test_partial_analysis_failure_keeps_alignment(self, service, user):
        images = [
            make_image("fail-analysis-1.jpg"),
            make_image("moderate_door.jpg"),
            make_image("fail-analysis-2.jpg"),
        ]

        claim = submit(service, user.user_id, images)

        assert claim.status == ClaimStatus.PENDING
        assert len(claim.image_refs) == 3
        assert len(claim.damage_analyses) == 3
        assert [a.status for a in claim.damage_analyses] == [
            AnalysisStatus.FAILED, AnalysisStatus.OK, AnalysisStatus.FAILED
        ]
        assert claim.analyzed_count == 1
        assert claim.severity == Severity.MODERATE
        assert claim.estimated_amount == 2500

    def test_store_failure_drops_image(self, service, user):
        images = [make_image("fail-store.jpg"), make_image("severe_roof.jpg")]

        claim = submit(service, user.user_id, images)

        assert [r.original_name for r in claim.image_refs] == ["severe_roof.jpg"]
        assert len(claim.damage_analyses) == len(claim.image_refs)
        assert claim.severity == Severity.SEVERE

    def test_all_images_fail_still_creates_minor_claim(self, service, user):
        images = [make_image("fail-store.jpg"), make_image("fail-analysis.jpg")]

        claim = submit(service, user.user_id, images)

        assert claim.status == ClaimStatus.PENDING
        assert claim.severity == Severity.MINOR
        assert claim.estimated_amount == 1000
        assert claim.analyzed_count == 0

    def test_no_images(self, service, user):
        claim = submit(service, user.user_id, [])

        assert claim.image_refs == []
        assert claim.damage_analyses == []
        assert claim.severity == Severity.MINOR
        assert claim.estimated_amount == 1000

    def test_unknown_user_fails_before_image_processing(self, service, analyzer, object_store):
        with pytest.raises(UserNotFoundError):
            submit(service, "user_missing", [make_image("severe.jpg")])

        assert analyzer.calls == []
        assert list(object_store.upload_dir.iterdir()) == []

    def test_deactivated_user_is_not_found(self, service, user, user_store):
        user_store.deactivate(user.user_id)

        with pytest.raises(UserNotFoundError):
            submit(service, user.user_id, [])

    def test_too_many_images(self, service, user):
        images = [make_image(f"minor_{i}.jpg") for i in range(6)]

        with pytest.raises(ClaimValidationError) as excinfo:
            submit(service, user.user_id, images)

        assert excinfo.value.details["field"] == "images"

    def test_non_image_rejected(self, service, user):
        with pytest.raises(ClaimValidationError):
            submit(service, user.user_id, [make_image("estimate.pdf", content_type="application/pdf")])

    def test_oversized_image_rejected(self, service, user, settings):
        big = make_image("minor_big.jpg", size=settings.max_image_size_bytes + 1)

        with pytest.raises(ClaimValidationError):
            submit(service, user.user_id, [big])

    def test_submission_notifies_user(self, service, user, notifier):
        claim = submit(service, user.user_id, [])

        assert len(notifier.sent) == 1
        assert notifier.sent[0]["address"] == user.email
        assert claim.claim_number in notifier.sent[0]["subject"]

    def test_admin_alert_when_configured(self, service, user, notifier, settings):
        settings.ADMIN_EMAIL = "claims-desk@example.com"

        submit(service, user.user_id, [])

        assert {m["address"] for m in notifier.sent} == {user.email, "claims-desk@example.com"}

    def test_notification_failure_does_not_fail_submission(self, service, user, claim_store):
        service.notifier = RecordingNotifier(fail=True)

        claim = submit(service, user.user_id, [make_image("moderate.jpg")])

        assert claim_store.get(claim.claim_id) is not None

    def test_claim_number_collision_is_regenerated(self, service, user, monkeypatch):
        numbers = iter(["CLM-1-DUP", "CLM-1-DUP", "CLM-1-NEW"])
        monkeypatch.setattr(
            claim_service_module, "generate_claim_number", lambda prefix: next(numbers)
        )

        first = submit(service, user.user_id, [])
        second = submit(service, user.user_id, [])

        assert first.claim_number == "CLM-1-DUP"
        assert second.claim_number == "CLM-1-NEW"

    def test_persistent_collisions_surface_storage_error(self, service, user, monkeypatch):
        monkeypatch.setattr(
            claim_service_module, "generate_claim_number", lambda prefix: "CLM-1-SAME"
        )
        submit(service, user.user_id, [])

        with pytest.raises(StorageUnavailableError):
            submit(service, user.user_id, [])

    def test_record_persist_failure_is_fatal(self, service, user, claim_store, monkeypatch):
        def broken_create(claim):
            raise StorageUnavailableError("disk full")

        monkeypatch.setattr(claim_store, "create", broken_create)

        with pytest.raises(StorageUnavailableError):
            submit(service, user.user_id, [make_image("minor.jpg")])


# ============================================================================
# Status Transitions
# ============================================================================


class TestUpdateStatus:

    def test_review_then_approve_records_two_entries(self, service, user, notifier):
        claim = submit(service, user.user_id, [make_image("moderate.jpg")])

        async def scenario():
            await service.update_status(claim.claim_id, ClaimStatus.UNDER_REVIEW, actor="adj-1")
            updated = await service.update_status(
                claim.claim_id, ClaimStatus.APPROVED,
                review_notes="Repair shop quote verified", final_amount=2300, actor="adj-2"
            )
            await service.drain_notifications()
            return updated

        updated = asyncio.run(scenario())

        assert updated.status == ClaimStatus.APPROVED
        assert updated.final_amount == 2300
        assert updated.payable_amount == 2300
        assert updated.review_notes == "Repair shop quote verified"
        assert updated.reviewed_at is not None
        assert [(h.from_status, h.to_status, h.actor) for h in updated.status_history] == [
            ("pending", "under-review", "adj-1"),
            ("under-review", "approved", "adj-2"),
        ]
        assert updated.status_history[0].changed_at <= updated.status_history[1].changed_at
        # submitted + two status changes
        assert len(notifier.sent) == 3
        assert "approved" in notifier.sent[-1]["body"]

    def test_approved_claim_is_immutable(self, service, user, claim_store):
        claim = submit(service, user.user_id, [])
        asyncio.run(service.update_status(claim.claim_id, ClaimStatus.APPROVED))
        stored_before = claim_store.get(claim.claim_id)

        for target in ClaimStatus:
            with pytest.raises(InvalidClaimStatusTransition):
                asyncio.run(service.update_status(claim.claim_id, target))

        assert claim_store.get(claim.claim_id) == stored_before

    def test_back_to_pending_is_invalid(self, service, user):
        claim = submit(service, user.user_id, [])
        asyncio.run(service.update_status(claim.claim_id, ClaimStatus.UNDER_REVIEW))

        with pytest.raises(InvalidClaimStatusTransition):
            asyncio.run(service.update_status(claim.claim_id, ClaimStatus.PENDING))

    def test_invalid_transition_sends_no_notification(self, service, user, notifier):
        claim = submit(service, user.user_id, [])
        sent_before = len(notifier.sent)

        with pytest.raises(InvalidClaimStatusTransition):
            asyncio.run(service.update_status(claim.claim_id, ClaimStatus.PENDING))

        assert len(notifier.sent) == sent_before

    def test_unknown_claim(self, service):
        with pytest.raises(ClaimNotFoundError):
            asyncio.run(service.update_status("claim_nope", ClaimStatus.APPROVED))

    def test_negative_final_amount_rejected(self, service, user):
        claim = submit(service, user.user_id, [])

        with pytest.raises(ClaimValidationError):
            asyncio.run(service.update_status(claim.claim_id, ClaimStatus.APPROVED, final_amount=-5))

    def test_final_amount_ignored_on_rejection(self, service, user):
        claim = submit(service, user.user_id, [])

        updated = asyncio.run(
            service.update_status(claim.claim_id, ClaimStatus.REJECTED, final_amount=900)
        )

        assert updated.final_amount is None
        assert updated.payable_amount == updated.estimated_amount

    def test_notification_failure_does_not_roll_back(self, service, user, claim_store):
        claim = submit(service, user.user_id, [])
        service.notifier = RecordingNotifier(fail=True)

        async def scenario():
            updated = await service.update_status(claim.claim_id, ClaimStatus.REJECTED)
            await service.drain_notifications()
            return updated

        asyncio.run(scenario())

        assert claim_store.get(claim.claim_id).status == ClaimStatus.REJECTED

    def test_concurrent_conflicting_updates_have_one_winner(self, service, user, claim_store):
        claim = submit(service, user.user_id, [])

        async def scenario():
            return await asyncio.gather(
                service.update_status(claim.claim_id, ClaimStatus.APPROVED, actor="a"),
                service.update_status(claim.claim_id, ClaimStatus.REJECTED, actor="b"),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], InvalidClaimStatusTransition)
        assert losers[0].details["current_status"] == winners[0].status.value

        stored = claim_store.get(claim.claim_id)
        assert stored.status == winners[0].status
        assert len(stored.status_history) == 1

    def test_stale_write_is_reevaluated(self, service, user, claim_store, monkeypatch):
        """A write from outside the service lands between read and write."""
        claim = submit(service, user.user_id, [])
        real_get = claim_store.get
        calls = {"n": 0}

        def racing_get(claim_id):
            snapshot = real_get(claim_id)
            calls["n"] += 1
            if calls["n"] == 1:
                outside = real_get(claim_id)
                outside.status = ClaimStatus.UNDER_REVIEW
                claim_store.save(outside)
            return snapshot

        monkeypatch.setattr(claim_store, "get", racing_get)

        updated = asyncio.run(service.update_status(claim.claim_id, ClaimStatus.APPROVED))

        assert updated.status == ClaimStatus.APPROVED
        assert updated.status_history[-1].from_status == "under-review"


# ============================================================================
# Deletion and Reads
# ============================================================================


class TestDeleteAndRead:

    def test_delete_survives_one_failed_image(self, service, user, claim_store, object_store):
        claim = submit(service, user.user_id, [
            make_image("minor_a.jpg"), make_image("minor_b.jpg"), make_image("minor_c.jpg")
        ])
        refs = [r.reference for r in claim.image_refs]
        object_store.failing_deletes.add(refs[1])

        result = asyncio.run(service.delete_claim(claim.claim_id))

        assert claim_store.get(claim.claim_id) is None
        assert result.images_deleted == 2
        assert result.images_failed == 1
        assert sorted(object_store.deleted) == sorted([refs[0], refs[2]])

    def test_delete_unknown_claim(self, service):
        with pytest.raises(ClaimNotFoundError):
            asyncio.run(service.delete_claim("claim_missing"))

    def test_get_claim_not_found(self, service):
        with pytest.raises(ClaimNotFoundError):
            service.get_claim("claim_missing")

    def test_list_user_claims_paginates_and_filters(self, service, user):
        claims = [submit(service, user.user_id, []) for _ in range(3)]
        asyncio.run(service.update_status(claims[0].claim_id, ClaimStatus.APPROVED))

        page = service.list_user_claims(user.user_id, page=1, limit=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert len(page.claims) == 2

        approved = service.list_user_claims(user.user_id, status="approved")
        assert [c.claim_id for c in approved.claims] == [claims[0].claim_id]

        everything = service.list_user_claims(user.user_id, status="all")
        assert everything.total == 3

    def test_list_rejects_unknown_status(self, service, user):
        with pytest.raises(ClaimValidationError):
            service.list_user_claims(user.user_id, status="closed")


def test_store_rejects_resubmitted_record(service, user, claim_store):
    claim = submit(service, user.user_id, [])

    with pytest.raises(DuplicateEntityError):
        claim_store.create(claim)


# ============================================================================
# Per-claim Locks
# ============================================================================


class TestClaimLocks:

    def test_unknown_ids_leave_no_locks(self, service):
        async def scenario():
            for i in range(50):
                with pytest.raises(ClaimNotFoundError):
                    await service.update_status(f"missing_{i}", ClaimStatus.APPROVED)
                with pytest.raises(ClaimNotFoundError):
                    await service.delete_claim(f"gone_{i}")

        asyncio.run(scenario())

        assert service._claim_locks == {}

    def test_locks_released_after_updates(self, service, user):
        claim = submit(service, user.user_id, [])

        async def scenario():
            await asyncio.gather(
                service.update_status(claim.claim_id, ClaimStatus.UNDER_REVIEW),
                service.update_status(claim.claim_id, ClaimStatus.REJECTED),
                return_exceptions=True,
            )
            with pytest.raises(InvalidClaimStatusTransition):
                await service.update_status(claim.claim_id, ClaimStatus.PENDING)

        asyncio.run(scenario())

        assert service._claim_locks == {}
