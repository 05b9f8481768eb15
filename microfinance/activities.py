"""
User activity log.

Append-only record of staff actions, stored newest first.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import uuid

from .errors import ValidationError
from .logging_config import get_logger
from .storage import CollectionStore


logger = get_logger("microfinance.activities")


class ActivityLog:
    """Staff activity feed"""

    def __init__(self, storage: CollectionStore):
        self.storage = storage

        self.activities_table = "userActivities"

    def list_activities(self, username: Optional[str] = None,
                        limit: Optional[int] = None) -> List[Dict[str, Any]]:
        activities = [a for a in self.storage.read_list(self.activities_table) if isinstance(a, dict)]
        if username:
            activities = [a for a in activities if a.get('username') == username]
        if limit is not None:
            activities = activities[:limit]
        return activities

    def add_activities(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """Prepend one activity object or a list of them, keeping their order"""
        entries = payload if isinstance(payload, list) else [payload]
        if not entries or not all(isinstance(entry, dict) for entry in entries):
            raise ValidationError("Invalid payload")

        added = [dict(entry) for entry in entries]
        with self.storage.atomic():
            current = self.storage.read_list(self.activities_table)
            self.storage.write(self.activities_table, added + current)
        return added

    def log_activity(self, username: Optional[str], action: str, details: str = "") -> Dict[str, Any]:
        """Record one staff action"""
        entry = {
            'id': f"ACT-{uuid.uuid4().hex[:12]}",
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'username': username or "system",
            'action': action,
            'details': details,
        }
        self.add_activities(entry)
        logger.debug(f"Activity recorded: {action} by {entry['username']}")
        return entry
