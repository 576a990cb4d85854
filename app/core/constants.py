"""Application constants and enums."""

from enum import Enum
from typing import Dict, List


# ===================
# Claim Constants
# ===================

class ClaimStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def values(cls) -> List[str]:
        return [e.value for e in cls]

    @classmethod
    def terminal_statuses(cls) -> List["ClaimStatus"]:
        """Statuses that cannot be changed."""
        return [cls.APPROVED, cls.REJECTED]

    @classmethod
    def valid_transitions(cls) -> Dict["ClaimStatus", List["ClaimStatus"]]:
        """Valid status transitions."""
        return {
            cls.PENDING: [cls.UNDER_REVIEW, cls.APPROVED, cls.REJECTED],
            cls.UNDER_REVIEW: [cls.APPROVED, cls.REJECTED],
            cls.APPROVED: [],
            cls.REJECTED: [],
        }


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"

    @classmethod
    def values(cls) -> List[str]:
        return [e.value for e in cls]

    @property
    def rank(self) -> int:
        """Position in the total order minor < moderate < severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.MINOR: 1,
    Severity.MODERATE: 2,
    Severity.SEVERE: 3,
}


class AnalysisStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


# ===================
# User Constants
# ===================

class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


# ===================
# Processing Constants
# ===================

DEFAULT_BASE_AMOUNT = 1000.0
DEFAULT_SEVERITY_MULTIPLIERS = {
    Severity.MINOR: 1.0,
    Severity.MODERATE: 2.5,
    Severity.SEVERE: 5.0,
}

CLAIM_NUMBER_ATTEMPTS = 3
DEFAULT_ACTOR = "admin"

# Keyword rules used to turn a free-text image description into a severity
SEVERE_KEYWORDS = [
    "crashed", "destroyed", "totaled", "severe", "major", "extensive",
    "crushed", "mangled", "shattered", "broken", "smashed",
]
MODERATE_KEYWORDS = [
    "damaged", "dented", "scratched", "bent", "cracked", "moderate",
    "medium", "significant", "noticeable",
]
MINOR_KEYWORDS = [
    "minor", "small", "light", "superficial", "tiny", "slight",
]
VEHICLE_OBJECTS = ["car", "vehicle", "truck", "automobile"]

DAMAGE_TYPE_KEYWORDS = {
    "dent": ["dent", "dented", "depression"],
    "scratch": ["scratch", "scratched", "scrape"],
    "crack": ["crack", "cracked", "split"],
    "break": ["broken", "shattered", "smashed"],
    "rust": ["rust", "corrosion", "oxidation"],
    "paint damage": ["paint", "color", "coating"],
}
GENERAL_DAMAGE = "general damage"
