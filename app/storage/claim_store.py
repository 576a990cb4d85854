"""Claim storage implementation."""

from typing import Dict, Any, Optional, List, Tuple
from datetime import datetime, timedelta, timezone

from app.storage.base import BaseStore
from app.models.claim import Claim
from app.core.constants import ClaimStatus, Severity
from app.core.config import settings
from app.core.exceptions import ClaimNotFoundError, DuplicateEntityError, StaleClaimError
from app.core.logging import get_logger

logger = get_logger(__name__)


class ClaimStore(BaseStore[Claim]):
    """Storage for claim entities."""

    def __init__(self, data_dir: Optional[str] = None):
        super().__init__(
            data_dir=data_dir or f"{settings.DATA_DIR}/claims",
            filename="claims.json"
        )

    def _get_id(self, entity: Claim) -> str:
        return entity.claim_id

    def _serialize(self, entity: Claim) -> Dict[str, Any]:
        """Serialize Claim to dict."""
        return entity.model_dump(mode='json')

    def _deserialize(self, data: Dict[str, Any]) -> Claim:
        """Deserialize dict to Claim; pydantic rebuilds the nested records."""
        return Claim.model_validate(data)

    def _clone(self, entity: Claim) -> Claim:
        return entity.model_copy(deep=True)

    # ===================
    # Writes
    # ===================

    def create(self, claim: Claim) -> Claim:
        """Insert a new claim. Claim IDs and claim numbers are unique."""

        def check(cache: Dict[str, Claim]):
            if claim.claim_id in cache:
                raise DuplicateEntityError("claim_id", claim.claim_id)
            for existing in cache.values():
                if existing.claim_number == claim.claim_number:
                    raise DuplicateEntityError("claim_number", claim.claim_number)

        return self.save_if(claim, check)

    def update(self, claim: Claim, expected_status: ClaimStatus) -> Claim:
        """
        Compare-and-set write.

        The stored status must still equal `expected_status`; otherwise a
        concurrent writer got there first and StaleClaimError is raised.
        """

        def check(cache: Dict[str, Claim]):
            current = cache.get(claim.claim_id)
            if current is None:
                raise ClaimNotFoundError(claim.claim_id)
            if current.status != expected_status:
                raise StaleClaimError(
                    claim.claim_id, ClaimStatus(expected_status).value, current.status.value
                )

        claim.updated_at = datetime.now(timezone.utc)
        return self.save_if(claim, check)

    # ===================
    # Queries
    # ===================

    def get_by_claim_number(self, claim_number: str) -> Optional[Claim]:
        """Find claim by claim number."""
        for claim in self.get_all():
            if claim.claim_number == claim_number:
                return claim
        return None

    def search(
        self,
        user_id: Optional[str] = None,
        status: Optional[ClaimStatus] = None,
        severity: Optional[Severity] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Claim], int]:
        """Filter, newest first, then paginate. Returns (page_items, total)."""
        results = self.get_all()

        if user_id:
            results = [c for c in results if c.user_id == user_id]

        if status:
            results = [c for c in results if c.status == status]

        if severity:
            results = [c for c in results if c.severity == severity]

        total = len(results)

        # Sort by submitted_at descending
        results.sort(key=lambda c: c.submitted_at, reverse=True)

        # Paginate
        skip = (max(page, 1) - 1) * limit
        results = results[skip:skip + limit]

        return results, total

    # Statistics
    def get_statistics(self) -> Dict[str, Any]:
        """Aggregate counts and amounts for the admin dashboard."""
        all_claims = self.get_all()

        by_status = {s.value: {"count": 0, "total_amount": 0.0} for s in ClaimStatus}
        by_severity = {s.value: {"count": 0, "average_amount": 0.0} for s in Severity}
        monthly: Dict[str, Dict[str, Any]] = {}
        total_estimated = 0.0
        total_payable = 0.0

        for claim in all_claims:
            status_entry = by_status[claim.status.value]
            status_entry["count"] += 1
            status_entry["total_amount"] += claim.estimated_amount

            severity_entry = by_severity[claim.severity.value]
            severity_entry["count"] += 1
            severity_entry["average_amount"] += claim.estimated_amount

            total_estimated += claim.estimated_amount
            if claim.status == ClaimStatus.APPROVED:
                total_payable += claim.payable_amount

            month_key = claim.submitted_at.strftime("%Y-%m")
            month_entry = monthly.setdefault(month_key, {"count": 0, "total_amount": 0.0})
            month_entry["count"] += 1
            month_entry["total_amount"] += claim.estimated_amount

        for entry in by_severity.values():
            if entry["count"]:
                entry["average_amount"] = round(entry["average_amount"] / entry["count"], 2)

        cutoff = (datetime.now(timezone.utc) - timedelta(days=366)).strftime("%Y-%m")
        recent_months = [
            {"month": key, **value}
            for key, value in sorted(monthly.items(), reverse=True)
            if key >= cutoff
        ][:12]

        return {
            "total": len(all_claims),
            "by_status": by_status,
            "by_severity": by_severity,
            "monthly": recent_months,
            "total_estimated": round(total_estimated, 2),
            "total_approved_payout": round(total_payable, 2),
        }
