# app/api/v1/users.py
from fastapi import APIRouter, Depends

from app.models.base import generate_id
from app.models.user import User, UserCreate, UserUpdate
from app.core.dependencies import get_user_store
from app.core.exceptions import UserNotFoundError
from app.core.logging import get_logger
from app.storage.user_store import UserStore

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=User, status_code=201)
async def register_user(request: UserCreate, store: UserStore = Depends(get_user_store)):
    """Register a user; the email address must not be taken."""
    user = User(
        user_id=generate_id("user"),
        email=request.email,
        name=request.name,
        phone=request.phone,
        role=request.role,
    )
    store.create(user)
    logger.info(f"Registered user {user.user_id}")
    return user


@router.get("/{user_id}", response_model=User)
async def get_user(user_id: str, store: UserStore = Depends(get_user_store)):
    user = store.get(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


@router.put("/{user_id}", response_model=User)
async def update_profile(
    user_id: str,
    request: UserUpdate,
    store: UserStore = Depends(get_user_store)
):
    """Edit display name and phone."""
    user = store.find_by_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    if request.name is not None:
        user.name = request.name
    if request.phone is not None:
        user.phone = request.phone
    return store.update(user)


@router.delete("/{user_id}", response_model=User)
async def deactivate_user(user_id: str, store: UserStore = Depends(get_user_store)):
    """Deactivate a user. Records are kept for the claims that reference them."""
    user = store.deactivate(user_id)
    logger.info(f"Deactivated user {user_id}")
    return user
