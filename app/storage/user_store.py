"""User directory storage."""

from typing import Dict, Any, Optional

from app.storage.base import BaseStore
from app.models.user import User
from app.models.base import utc_now
from app.core.config import settings
from app.core.exceptions import DuplicateEntityError, UserNotFoundError


class UserStore(BaseStore[User]):
    """Storage for user records. Users are deactivated, never deleted."""

    def __init__(self, data_dir: Optional[str] = None):
        super().__init__(
            data_dir=data_dir or f"{settings.DATA_DIR}/users",
            filename="users.json"
        )

    def _get_id(self, entity: User) -> str:
        return entity.user_id

    def _serialize(self, entity: User) -> Dict[str, Any]:
        return entity.model_dump(mode='json')

    def _deserialize(self, data: Dict[str, Any]) -> User:
        return User.model_validate(data)

    def _clone(self, entity: User) -> User:
        return entity.model_copy(deep=True)

    def create(self, user: User) -> User:
        """Insert a user; email addresses are unique."""

        def check(cache: Dict[str, User]):
            for existing in cache.values():
                if existing.email == user.email:
                    raise DuplicateEntityError("email", user.email)

        return self.save_if(user, check)

    def find_by_id(self, user_id: str, active_only: bool = True) -> Optional[User]:
        user = self.get(user_id)
        if user is None or (active_only and not user.is_active):
            return None
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        email = email.strip().lower()
        for user in self.get_all():
            if user.email == email:
                return user
        return None

    def update(self, user: User) -> User:
        """Replace an existing user; the existence check and write share one lock."""

        def check(cache: Dict[str, User]):
            if user.user_id not in cache:
                raise UserNotFoundError(user.user_id)

        user.touch()
        return self.save_if(user, check)

    def deactivate(self, user_id: str) -> User:
        user = self.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        user.is_active = False
        user.updated_at = utc_now()
        return self.save(user)
