"""
Staff users and sessions.

Back-office staff are Admins or Collection Agents, with a configurable cap on
how many of each may exist. Sessions are signed JWTs whose subject is the
user id; they are carried in an HttpOnly cookie by the API layer.
"""

from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

import jwt

from .errors import ConflictError, NotFoundError, ValidationError
from .logging_config import get_logger, log_action
from .storage import CollectionStore, StorageRecord, next_sequential_id


logger = get_logger("microfinance.users")


class UserRole(Enum):
    """Staff roles"""
    ADMIN = "Admin"
    COLLECTION_AGENT = "Collection Agent"


def _parse_role(value) -> UserRole:
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationError(f"Unknown role: {value!r}")


@dataclass
class User(StorageRecord):
    """Back-office staff member"""
    username: str = ""
    password: str = ""
    role: UserRole = UserRole.COLLECTION_AGENT
    last_login: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _parsers = {'role': _parse_role}

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialized user without the password"""
        data = self.to_dict()
        data.pop('password', None)
        return data


class UserManager:
    """
    Manages staff accounts and role caps
    """

    def __init__(self, storage: CollectionStore, max_admins: int = 1,
                 max_collection_agents: int = 2):
        self.storage = storage
        self.role_limits = {
            UserRole.ADMIN: max_admins,
            UserRole.COLLECTION_AGENT: max_collection_agents,
        }

        self.users_table = "users"

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        users = [User.from_dict(doc) for doc in self._load_documents()]
        if role is not None:
            users = [user for user in users if user.role == role]
        return users

    def get_user(self, user_id: str) -> Optional[User]:
        return next((user for user in self.list_users() if user.id == user_id), None)

    def get_user_by_username(self, username: str) -> Optional[User]:
        wanted = str(username or "").lower()
        return next((user for user in self.list_users() if user.username.lower() == wanted), None)

    def create_user(self, payload: Dict[str, Any]) -> User:
        """
        Create a staff user.

        Args:
            payload: ``{username, password, role}`` plus any extra profile keys

        Returns:
            The stored user

        Raises:
            ValidationError: Missing username/password or unknown role
            ConflictError: Username taken, id taken, or role cap reached
        """
        if not isinstance(payload, dict):
            raise ValidationError("Invalid payload")
        if not payload.get('username') or not payload.get('password'):
            raise ValidationError("Missing fields")
        if len(str(payload['username']).strip()) < 3:
            raise ValidationError("Username must be at least 3 characters")
        if len(str(payload['password'])) < 6:
            raise ValidationError("Password must be at least 6 characters")

        documents = self._load_documents()
        users = [User.from_dict(doc) for doc in documents]
        existing_ids = [user.id for user in users]

        user_id = payload.get('id') or next_sequential_id("USR", existing_ids)
        if user_id in existing_ids:
            raise ConflictError(f"User ID {user_id} already exists")

        user = User.from_dict({**payload, 'id': user_id})
        self._check_username(user.username, users)
        self._check_role_limit(user.role, users)

        documents.append(user.to_dict())
        self.storage.write(self.users_table, documents)
        log_action(logger, "info", f"Created user {user.username}",
                   user_id=user.id, action="user_created", resource=user.id,
                   extra={"role": user.role.value})
        return user

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> User:
        """Merge a partial change object into a user"""
        if not user_id or not isinstance(changes, dict):
            raise ValidationError("Missing fields")

        documents = self._load_documents()
        index = next((i for i, doc in enumerate(documents) if doc.get('id') == user_id), None)
        if index is None:
            raise NotFoundError("User not found")

        current = User.from_dict(documents[index])
        updated = User.from_dict({**documents[index], **changes, 'id': user_id})
        others = [User.from_dict(doc) for i, doc in enumerate(documents) if i != index]
        if updated.username.lower() != current.username.lower():
            self._check_username(updated.username, others)
        if updated.role != current.role:
            self._check_role_limit(updated.role, others)

        documents[index] = updated.to_dict()
        self.storage.write(self.users_table, documents)
        log_action(logger, "info", f"Updated user {user_id}",
                   user_id=user_id, action="user_updated", resource=user_id,
                   extra={"fields": sorted(k for k in changes if k != 'password')})
        return updated

    def delete_user(self, user_id: str) -> User:
        users = self.list_users()
        removed = next((user for user in users if user.id == user_id), None)
        if removed is None:
            raise NotFoundError("User not found")

        self.storage.write(self.users_table, [user.to_dict() for user in users if user is not removed])
        log_action(logger, "info", f"Deleted user {user_id}",
                   user_id=user_id, action="user_deleted", resource=user_id)
        return removed

    def authenticate(self, username: str, password: str) -> Optional[User]:
        """
        Check staff credentials and record the login time.

        Usernames match case-insensitively; passwords must match exactly.
        """
        if not username or not password:
            raise ValidationError("Missing credentials")

        user = self.get_user_by_username(username)
        if user is None or user.password != password:
            log_action(logger, "warning", "Authentication failed",
                       action="login_failed", resource="session",
                       extra={"username": str(username)})
            return None

        user = self.update_user(user.id, {'lastLogin': datetime.now(timezone.utc).isoformat()})
        log_action(logger, "info", f"User {user.username} logged in",
                   user_id=user.id, action="login", resource="session")
        return user

    def _check_username(self, username: str, users: List[User]) -> None:
        if not username:
            raise ValidationError("Missing fields")
        if any(user.username.lower() == username.lower() for user in users):
            raise ConflictError(f"Username {username} is already taken")

    def _check_role_limit(self, role: UserRole, users: List[User]) -> None:
        limit = self.role_limits.get(role)
        if limit is None:
            return
        if sum(1 for user in users if user.role == role) >= limit:
            raise ConflictError(f"Maximum number of {role.value} users ({limit}) reached")

    def _load_documents(self) -> List[Dict[str, Any]]:
        return [doc for doc in self.storage.read_list(self.users_table) if isinstance(doc, dict)]


class SessionManager:
    """Issues and validates signed session tokens"""

    def __init__(self, user_manager: UserManager, secret: str,
                 algorithm: str = "HS256", max_age_days: int = 7):
        self.user_manager = user_manager
        self.secret = secret
        self.algorithm = algorithm
        self.max_age = timedelta(days=max_age_days)

    @property
    def max_age_seconds(self) -> int:
        return int(self.max_age.total_seconds())

    def create_token(self, user: User) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "iat": now,
            "exp": now + self.max_age,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def resolve(self, token: Optional[str]) -> Optional[User]:
        """User behind a session token, or None when absent, invalid or expired"""
        if not token:
            return None
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("Session token expired")
            return None
        except jwt.InvalidTokenError:
            logger.warning("Invalid session token presented")
            return None
        user_id = payload.get("sub")
        if not user_id:
            return None
        return self.user_manager.get_user(user_id)
