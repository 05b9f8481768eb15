"""
System wiring and authentication dependencies
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request

from ..activities import ActivityLog
from ..cache import CachedStore
from ..collections import CollectionsManager
from ..config import MicrofinanceConfig, get_config
from ..customers import CustomerManager
from ..financials import FinancialsManager
from ..loans import LoanManager
from ..logging_config import get_logger
from ..portal import CustomerPortal
from ..reporting import ReportingEngine
from ..seed import seed_demo_data
from ..storage import CollectionStore, create_store
from ..users import SessionManager, User, UserManager, UserRole


logger = get_logger("microfinance.api")


class MicrofinanceSystem:
    """Back-office system with every manager sharing one cached store"""

    def __init__(self, config: Optional[MicrofinanceConfig] = None,
                 storage: Optional[CollectionStore] = None):
        self.config = config or get_config()

        # Initialize storage
        backend = storage or create_store(
            self.config.storage_backend, self.config.data_dir, self.config.database_path
        )
        self.storage = CachedStore(backend)

        if self.config.seed_demo_data:
            seed_demo_data(self.storage, self.config.default_profile_picture)

        # Initialize managers
        self.customer_manager = CustomerManager(self.storage, self.config.default_profile_picture)
        self.loan_manager = LoanManager(
            self.storage, self.customer_manager, self.config.provisional_id_prefix
        )
        self.collections_manager = CollectionsManager(self.storage, self.loan_manager)
        self.user_manager = UserManager(
            self.storage, self.config.max_admins, self.config.max_collection_agents
        )
        self.session_manager = SessionManager(
            self.user_manager, self.config.jwt_secret, self.config.jwt_algorithm,
            self.config.session_max_age_days
        )
        self.activity_log = ActivityLog(self.storage)
        self.financials_manager = FinancialsManager(self.storage)
        self.reporting_engine = ReportingEngine(
            self.loan_manager, self.customer_manager, self.collections_manager
        )
        self.portal = CustomerPortal(
            self.customer_manager, self.loan_manager, self.collections_manager
        )

    def close(self) -> None:
        self.storage.close()


_system: Optional[MicrofinanceSystem] = None


def get_system() -> MicrofinanceSystem:
    """Dependency returning the process-wide system, built on first use"""
    global _system
    if _system is None:
        _system = MicrofinanceSystem()
    return _system


def get_current_user(request: Request,
                     system: MicrofinanceSystem = Depends(get_system)) -> Optional[User]:
    """User behind the session cookie, or None"""
    token = request.cookies.get(system.config.session_cookie_name)
    return system.session_manager.resolve(token)


def require_role(*roles: UserRole):
    """Dependency factory restricting an endpoint to signed-in staff with one of the roles"""
    def check(user: Optional[User] = Depends(get_current_user),
              system: MicrofinanceSystem = Depends(get_system)) -> Optional[User]:
        if not system.config.auth_enabled:
            return user  # Role checks are off
        if user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        if roles and user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return check


def actor_name(user: Optional[User]) -> Optional[str]:
    return user.username if user else None
