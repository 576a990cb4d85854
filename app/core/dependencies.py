"""
Request-time access to the collaborators built at startup.

Everything lives on app.state, constructed once in the lifespan handler
(or handed to create_app by tests); these functions only look it up.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.core.config import Settings
from app.core.logging import get_logger
from app.services.aggregator import SeverityAggregator
from app.services.claim_service import ClaimService
from app.services.image_analysis import ImageAnalyzer, build_image_analyzer
from app.services.notifications import Notifier, build_notifier
from app.services.object_store import ObjectStore, build_object_store
from app.storage.claim_store import ClaimStore
from app.storage.user_store import UserStore

logger = get_logger(__name__)


@dataclass
class Container:
    """Collaborators wired together for one running application."""
    config: Settings
    claim_store: ClaimStore
    user_store: UserStore
    object_store: ObjectStore
    analyzer: ImageAnalyzer
    notifier: Notifier
    claim_service: ClaimService


def build_container(
    config: Settings,
    claim_store: Optional[ClaimStore] = None,
    user_store: Optional[UserStore] = None,
    object_store: Optional[ObjectStore] = None,
    analyzer: Optional[ImageAnalyzer] = None,
    notifier: Optional[Notifier] = None
) -> Container:
    """Construct each collaborator once; any of them may be supplied instead."""
    claim_store = claim_store or ClaimStore(f"{config.DATA_DIR}/claims")
    user_store = user_store or UserStore(f"{config.DATA_DIR}/users")
    object_store = object_store or build_object_store(config)
    analyzer = analyzer or build_image_analyzer(config, object_store)
    notifier = notifier or build_notifier(config)

    claim_service = ClaimService(
        claim_store=claim_store,
        user_store=user_store,
        object_store=object_store,
        analyzer=analyzer,
        notifier=notifier,
        aggregator=SeverityAggregator.from_settings(config),
        config=config,
    )
    logger.info(
        f"Wired services: object_store={type(object_store).__name__} "
        f"analyzer={type(analyzer).__name__} notifier={type(notifier).__name__}"
    )

    return Container(
        config=config,
        claim_store=claim_store,
        user_store=user_store,
        object_store=object_store,
        analyzer=analyzer,
        notifier=notifier,
        claim_service=claim_service,
    )


# ===================
# FastAPI Dependencies
# ===================

def get_container(request: Request) -> Container:
    return request.app.state.container


def get_claim_service(request: Request) -> ClaimService:
    """Get the claim lifecycle service."""
    return get_container(request).claim_service


def get_user_store(request: Request) -> UserStore:
    return get_container(request).user_store


def get_app_settings(request: Request) -> Settings:
    return get_container(request).config
