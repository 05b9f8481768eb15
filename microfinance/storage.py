"""
Storage Backend Module

Provides an abstract collection-document store and implementations for
in-memory (testing), JSON files (one document per collection) and SQLite.
Every collection is a single JSON document that is read and rewritten whole.
Monetary values are Decimal in records and JSON numbers on disk.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Union
from decimal import Decimal, InvalidOperation
from datetime import date, datetime, timezone
from dataclasses import dataclass, fields
from enum import Enum
from pathlib import Path
from contextlib import contextmanager
import copy
import json
import os
import sqlite3
import tempfile
import threading

from .errors import ValidationError
from .logging_config import get_logger


logger = get_logger("microfinance.storage")


def to_camel(name: str) -> str:
    """Convert a snake_case attribute name to its camelCase JSON key"""
    head, *tail = name.split('_')
    return head + ''.join(part.title() for part in tail)


def to_json_value(value: Any) -> Any:
    """Convert Decimal, date and Enum values to JSON-friendly values"""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    return value


def parse_decimal(value: Any) -> Decimal:
    """Parse a JSON number (or numeric string) into a Decimal"""
    if value is None or value == "":
        return Decimal('0')
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() keeps floats such as 357.14 exact in decimal form
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {value!r}")
    # NaN and Infinity have no JSON representation
    if not result.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return result


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO date (or datetime) string into a date"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}")


def next_sequential_id(prefix: str, existing_ids: Iterable[Any], width: int = 3) -> str:
    """
    Next id in a ``PREFIXnnn`` sequence: highest numeric suffix plus one.

    Ids without a numeric suffix are ignored, so ``CUST007`` and ``CUSTx``
    in the collection yield ``CUST008``.
    """
    numbers = []
    for record_id in existing_ids:
        if not isinstance(record_id, str) or not record_id.startswith(prefix):
            continue
        suffix = record_id[len(prefix):]
        if suffix.isdigit():
            numbers.append(int(suffix))
    next_number = max(numbers) + 1 if numbers else 1
    return f"{prefix}{next_number:0{width}d}"


@dataclass
class StorageRecord:
    """
    Base class for all stored records.

    Subclasses declare their attributes in snake_case and end with an
    ``extra`` dict that keeps client-supplied keys the record does not model.
    """
    id: str

    # attribute name -> parser applied to the raw JSON value
    _parsers: ClassVar[Dict[str, Callable[[Any], Any]]] = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a camelCase JSON dictionary for storage"""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == 'extra' or value is None:
                continue
            result[to_camel(f.name)] = to_json_value(value)
        for key, value in getattr(self, 'extra', {}).items():
            result.setdefault(key, value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from a stored dictionary"""
        if not isinstance(data, dict):
            raise ValidationError("Record must be a JSON object")

        known = {to_camel(f.name): f.name for f in fields(cls) if f.name != 'extra'}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            attr = known.get(key)
            if attr is None:
                extra[key] = value
                continue
            parser = cls._parsers.get(attr)
            kwargs[attr] = parser(value) if parser and value is not None else value

        if any(f.name == 'extra' for f in fields(cls)):
            kwargs['extra'] = extra
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ValidationError(f"Invalid {cls.__name__} record: {e}")


class CollectionStore(ABC):
    """Abstract interface for collection-document stores"""

    @abstractmethod
    def read(self, name: str, default: Any = None) -> Any:
        """Read the whole document of a collection"""
        pass

    @abstractmethod
    def write(self, name: str, document: Any) -> None:
        """Replace the whole document of a collection"""
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Delete a collection document"""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check if a collection document exists"""
        pass

    @abstractmethod
    def names(self) -> List[str]:
        """List stored collection names"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage"""
        pass

    def read_list(self, name: str) -> List[Dict[str, Any]]:
        """Read a collection whose document is an array of records"""
        document = self.read(name, [])
        if not isinstance(document, list):
            logger.warning(f"Collection {name} is not an array, treating as empty")
            return []
        return document

    def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic multi-collection operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStore(CollectionStore):
    """In-memory store implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Any]] = None
        self._depth = 0

    def read(self, name: str, default: Any = None) -> Any:
        with self._lock:
            if name not in self._data:
                return copy.deepcopy(default)
            # Deep copy to prevent external mutation
            return json.loads(json.dumps(self._data[name]))

    def write(self, name: str, document: Any) -> None:
        with self._lock:
            self._data[name] = json.loads(json.dumps(document, default=str))

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._data.pop(name, None) is not None

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._data

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass

    def begin_transaction(self) -> None:
        with self._lock:
            if self._depth == 0:
                self._snapshot = copy.deepcopy(self._data)
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth > 0:
                self._depth -= 1
                if self._depth == 0:
                    self._snapshot = None

    def rollback(self) -> None:
        with self._lock:
            if self._depth > 0:
                if self._snapshot is not None:
                    self._data = self._snapshot
                self._snapshot = None
                self._depth = 0


class JSONFileStore(CollectionStore):
    """
    JSON file store: one ``<name>.json`` file per collection in a data directory.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves half a document behind. Inside a transaction writes are buffered
    and flushed on commit.
    """

    def __init__(self, data_dir: Union[str, Path] = "data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._pending: Optional[Dict[str, Any]] = None
        self._depth = 0

    def _path(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def read(self, name: str, default: Any = None) -> Any:
        with self._lock:
            if self._pending is not None and name in self._pending:
                return copy.deepcopy(self._pending[name])

            path = self._path(name)
            if not path.exists():
                return copy.deepcopy(default)
            try:
                with path.open("r", encoding="utf-8") as fh:
                    return json.load(fh)
            except json.JSONDecodeError as e:
                logger.warning(f"Unreadable collection file {path}: {e}")
                return copy.deepcopy(default)

    def write(self, name: str, document: Any) -> None:
        with self._lock:
            if self._pending is not None:
                self._pending[name] = json.loads(json.dumps(document, default=str))
                return
            self._write_file(name, document)

    def _write_file(self, name: str, document: Any) -> None:
        path = self._path(name)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.data_dir), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, default=str)
            os.replace(tmp_path, path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def delete(self, name: str) -> bool:
        with self._lock:
            if self._pending is not None:
                self._pending.pop(name, None)
            path = self._path(name)
            if path.exists():
                path.unlink()
                return True
            return False

    def exists(self, name: str) -> bool:
        with self._lock:
            if self._pending is not None and name in self._pending:
                return True
            return self._path(name).exists()

    def names(self) -> List[str]:
        with self._lock:
            stored = {p.stem for p in self.data_dir.glob("*.json")}
            if self._pending:
                stored.update(self._pending)
            return sorted(stored)

    def close(self) -> None:
        pass

    def begin_transaction(self) -> None:
        with self._lock:
            if self._depth == 0:
                self._pending = {}
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            if self._depth == 0:
                pending, self._pending = self._pending or {}, None
                for name, document in pending.items():
                    self._write_file(name, document)

    def rollback(self) -> None:
        with self._lock:
            self._pending = None
            self._depth = 0


class SQLiteStore(CollectionStore):
    """SQLite store implementation: one row per collection document"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._depth = 0

        with self._lock:
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS collections (
                    name TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()

    def read(self, name: str, default: Any = None) -> Any:
        with self._lock:
            cursor = self._connection.execute(
                "SELECT document FROM collections WHERE name = ?", (name,)
            )
            row = cursor.fetchone()
            if row:
                return json.loads(row['document'])
            return copy.deepcopy(default)

    def write(self, name: str, document: Any) -> None:
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            self._connection.execute("""
                INSERT OR REPLACE INTO collections (name, document, updated_at)
                VALUES (?, ?, ?)
            """, (name, json.dumps(document, default=str), now))

            # Only commit if not in transaction
            if not self._in_transaction:
                self._connection.commit()

    def delete(self, name: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM collections WHERE name = ?", (name,)
            )
            if not self._in_transaction:
                self._connection.commit()
            return cursor.rowcount > 0

    def exists(self, name: str) -> bool:
        with self._lock:
            cursor = self._connection.execute(
                "SELECT 1 FROM collections WHERE name = ? LIMIT 1", (name,)
            )
            return cursor.fetchone() is not None

    def names(self) -> List[str]:
        with self._lock:
            cursor = self._connection.execute("SELECT name FROM collections ORDER BY name")
            return [row['name'] for row in cursor.fetchall()]

    def begin_transaction(self) -> None:
        with self._lock:
            if self._depth == 0:
                # isolation_level='DEFERRED' opens the transaction on first write
                self._in_transaction = True
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            self._depth -= 1
            # Only the outermost unit commits
            if self._depth == 0 and self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False
            self._depth = 0

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_store(backend: str, data_dir: str = "data",
                 database_path: str = "microfinance.db") -> CollectionStore:
    """Create a store for the configured backend name"""
    backend = backend.lower()
    if backend == "json":
        return JSONFileStore(data_dir)
    if backend == "sqlite":
        return SQLiteStore(database_path)
    if backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown storage backend: {backend}")
