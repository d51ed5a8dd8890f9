"""
Repository abstraction for MongoDB and an in-memory test implementation.

Two collections are managed: ``foods`` (donation listings) and ``requests``
(recipients asking for a listing). Documents leave the repositories as plain
dicts whose ``_id`` is the hex string form of the ObjectId.
"""

from __future__ import annotations

import contextlib
import copy
import enum
import logging
import threading
from datetime import datetime, timezone
from typing import Iterator, Optional, Protocol

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.server_api import ServerApi

from shareplate import errors

logger = logging.getLogger(__name__)

FOODS_COLLECTION = "foods"
REQUESTS_COLLECTION = "requests"

# Keys a client may never set on a food listing.
FOOD_SYSTEM_FIELDS = frozenset({"_id", "id", "food_status", "donator_email"})


class FoodStatus(str, enum.Enum):
    AVAILABLE = "Available"
    DONATED = "Donated"


class RequestStatus(str, enum.Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


def parse_object_id(value: str) -> ObjectId:
    """Convert a path/body identifier to an ObjectId or raise InvalidId."""
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise errors.InvalidId()
    return ObjectId(value)


def strip_system_fields(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if k not in FOOD_SYSTEM_FIELDS}


def _to_public(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    d = dict(doc)
    if isinstance(d.get("_id"), ObjectId):
        d["_id"] = str(d["_id"])
    return d


class FoodRepository(Protocol):
    """Operations the API needs on the ``foods`` collection."""

    def create(self, doc: dict, owner_email: str) -> str:
        ...

    def get(self, food_id: str) -> Optional[dict]:
        ...

    def list_available(self) -> list[dict]:
        ...

    def list_featured(self, limit: int = 6) -> list[dict]:
        ...

    def list_by_owner(self, email: str) -> list[dict]:
        ...

    def update(self, food_id: str, fields: dict) -> int:
        ...

    def delete(self, food_id: str) -> bool:
        ...

    def set_status(
        self,
        food_id: str,
        status: FoodStatus,
        expected: Optional[FoodStatus] = None,
    ) -> bool:
        ...


class RequestRepository(Protocol):
    """Operations the API needs on the ``requests`` collection."""

    def create(self, food_id: str, user_name: str, user_email: str) -> str:
        ...

    def get(self, request_id: str) -> Optional[dict]:
        ...

    def list_by_requester(self, email: str) -> list[dict]:
        ...

    def delete(self, request_id: str, requester_email: str) -> bool:
        ...

    def update_status(
        self,
        request_id: str,
        new_status: RequestStatus,
        expected_status: RequestStatus = RequestStatus.PENDING,
    ) -> bool:
        ...


def _new_food_doc(doc: dict, owner_email: str) -> dict:
    food = strip_system_fields(doc)
    food["food_status"] = FoodStatus.AVAILABLE.value
    food["donator_email"] = owner_email
    return food


def _new_request_doc(food_id: str, user_name: str, user_email: str) -> dict:
    return {
        "food_id": food_id,
        "user_name": user_name,
        "user_email": user_email,
        "requested_at": datetime.now(timezone.utc),
        "status": RequestStatus.PENDING.value,
    }


class InMemoryFoodRepository:
    """Simple in-memory food store for development and tests."""

    def __init__(self):
        self.foods: dict[str, dict] = {}
        self._lock = threading.Lock()

    def create(self, doc: dict, owner_email: str) -> str:
        food_id = str(ObjectId())
        food = _new_food_doc(copy.deepcopy(doc), owner_email)
        food["_id"] = food_id
        with self._lock:
            self.foods[food_id] = food
        return food_id

    def get(self, food_id: str) -> Optional[dict]:
        parse_object_id(food_id)
        food = self.foods.get(food_id)
        return copy.deepcopy(food) if food else None

    def list_available(self) -> list[dict]:
        with self._lock:
            return [
                copy.deepcopy(f)
                for f in self.foods.values()
                if f.get("food_status") == FoodStatus.AVAILABLE.value
            ]

    def list_featured(self, limit: int = 6) -> list[dict]:
        return [
            f for f in self.list_available() if f.get("featured") is True
        ][:limit]

    def list_by_owner(self, email: str) -> list[dict]:
        with self._lock:
            return [
                copy.deepcopy(f)
                for f in self.foods.values()
                if f.get("donator_email") == email
            ]

    def update(self, food_id: str, fields: dict) -> int:
        parse_object_id(food_id)
        with self._lock:
            food = self.foods.get(food_id)
            if food is None:
                return 0
            changed = {
                k: v for k, v in strip_system_fields(fields).items()
                if food.get(k, object()) != v
            }
            food.update(copy.deepcopy(changed))
            return 1 if changed else 0

    def delete(self, food_id: str) -> bool:
        parse_object_id(food_id)
        with self._lock:
            return self.foods.pop(food_id, None) is not None

    def set_status(
        self,
        food_id: str,
        status: FoodStatus,
        expected: Optional[FoodStatus] = None,
    ) -> bool:
        parse_object_id(food_id)
        with self._lock:
            food = self.foods.get(food_id)
            if food is None:
                return False
            if (
                expected is not None
                and food.get("food_status") != FoodStatus(expected).value
            ):
                return False
            food["food_status"] = FoodStatus(status).value
            return True

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.foods.clear()


class InMemoryRequestRepository:
    """In-memory request store. Check-and-insert runs under a lock so the
    (food_id, user_email) pair stays unique like the Mongo index."""

    def __init__(self):
        self.requests: dict[str, dict] = {}
        self._lock = threading.Lock()

    def create(self, food_id: str, user_name: str, user_email: str) -> str:
        with self._lock:
            for existing in self.requests.values():
                if (
                    existing["food_id"] == food_id
                    and existing["user_email"] == user_email
                ):
                    raise errors.DuplicateRequest()
            request_id = str(ObjectId())
            doc = _new_request_doc(food_id, user_name, user_email)
            doc["_id"] = request_id
            self.requests[request_id] = doc
        return request_id

    def get(self, request_id: str) -> Optional[dict]:
        parse_object_id(request_id)
        doc = self.requests.get(request_id)
        return copy.deepcopy(doc) if doc else None

    def list_by_requester(self, email: str) -> list[dict]:
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self.requests.values()
                if r["user_email"] == email
            ]

    def delete(self, request_id: str, requester_email: str) -> bool:
        parse_object_id(request_id)
        with self._lock:
            doc = self.requests.get(request_id)
            if doc is None or doc["user_email"] != requester_email:
                return False
            del self.requests[request_id]
            return True

    def update_status(
        self,
        request_id: str,
        new_status: RequestStatus,
        expected_status: RequestStatus = RequestStatus.PENDING,
    ) -> bool:
        parse_object_id(request_id)
        with self._lock:
            doc = self.requests.get(request_id)
            if doc is None or doc["status"] != RequestStatus(expected_status).value:
                return False
            doc["status"] = RequestStatus(new_status).value
            return True

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.requests.clear()


@contextlib.contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as exc:
        logger.exception("MongoDB failure while trying to %s", action)
        raise errors.StorageError(f"Failed to {action}") from exc


class MongoFoodRepository:
    """pymongo-backed implementation over the ``foods`` collection."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def create(self, doc: dict, owner_email: str) -> str:
        food = _new_food_doc(doc, owner_email)
        with _storage_errors("add food"):
            result = self.collection.insert_one(food)
        return str(result.inserted_id)

    def get(self, food_id: str) -> Optional[dict]:
        oid = parse_object_id(food_id)
        with _storage_errors("fetch food"):
            return _to_public(self.collection.find_one({"_id": oid}))

    def _find(self, query: dict, action: str, limit: int = 0) -> list[dict]:
        with _storage_errors(action):
            return [_to_public(d) for d in self.collection.find(query).limit(limit)]

    def list_available(self) -> list[dict]:
        return self._find(
            {"food_status": FoodStatus.AVAILABLE.value}, "fetch foods"
        )

    def list_featured(self, limit: int = 6) -> list[dict]:
        return self._find(
            {"food_status": FoodStatus.AVAILABLE.value, "featured": True},
            "fetch featured foods",
            limit=limit,
        )

    def list_by_owner(self, email: str) -> list[dict]:
        return self._find({"donator_email": email}, "fetch user foods")

    def update(self, food_id: str, fields: dict) -> int:
        oid = parse_object_id(food_id)
        fields = strip_system_fields(fields)
        if not fields:
            return 0
        with _storage_errors("update food"):
            result = self.collection.update_one({"_id": oid}, {"$set": fields})
        return result.modified_count

    def delete(self, food_id: str) -> bool:
        oid = parse_object_id(food_id)
        with _storage_errors("delete food"):
            result = self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    def set_status(
        self,
        food_id: str,
        status: FoodStatus,
        expected: Optional[FoodStatus] = None,
    ) -> bool:
        """Set the status; with ``expected`` only if the current status matches."""
        oid = parse_object_id(food_id)
        query: dict = {"_id": oid}
        if expected is not None:
            query["food_status"] = FoodStatus(expected).value
        with _storage_errors("update food status"):
            result = self.collection.update_one(
                query, {"$set": {"food_status": FoodStatus(status).value}}
            )
        return result.matched_count > 0


class MongoRequestRepository:
    """pymongo-backed implementation over the ``requests`` collection."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def ensure_indexes(self) -> None:
        with _storage_errors("create request indexes"):
            self.collection.create_index(
                [("food_id", ASCENDING), ("user_email", ASCENDING)],
                unique=True,
                name="food_id_user_email_unique",
            )
            self.collection.create_index("user_email")

    def create(self, food_id: str, user_name: str, user_email: str) -> str:
        doc = _new_request_doc(food_id, user_name, user_email)
        with _storage_errors("submit request"):
            try:
                result = self.collection.insert_one(doc)
            except DuplicateKeyError as exc:
                raise errors.DuplicateRequest() from exc
        return str(result.inserted_id)

    def get(self, request_id: str) -> Optional[dict]:
        oid = parse_object_id(request_id)
        with _storage_errors("fetch request"):
            return _to_public(self.collection.find_one({"_id": oid}))

    def list_by_requester(self, email: str) -> list[dict]:
        with _storage_errors("fetch requests"):
            return [
                _to_public(d) for d in self.collection.find({"user_email": email})
            ]

    def delete(self, request_id: str, requester_email: str) -> bool:
        oid = parse_object_id(request_id)
        with _storage_errors("delete request"):
            result = self.collection.delete_one(
                {"_id": oid, "user_email": requester_email}
            )
        return result.deleted_count > 0

    def update_status(
        self,
        request_id: str,
        new_status: RequestStatus,
        expected_status: RequestStatus = RequestStatus.PENDING,
    ) -> bool:
        oid = parse_object_id(request_id)
        with _storage_errors("update request"):
            result = self.collection.update_one(
                {"_id": oid, "status": RequestStatus(expected_status).value},
                {"$set": {"status": RequestStatus(new_status).value}},
            )
        return result.modified_count > 0


class MongoStore:
    """Owns the process-wide MongoClient and hands out the repositories."""

    def __init__(self, uri: str, db_name: str, client: MongoClient | None = None):
        if not uri and client is None:
            raise ValueError("A MongoDB URI is required for MongoStore")
        self.client = client or MongoClient(
            uri,
            server_api=ServerApi("1", strict=True, deprecation_errors=True),
        )
        self.db = self.client[db_name]
        self.foods = MongoFoodRepository(self.db[FOODS_COLLECTION])
        self.requests = MongoRequestRepository(self.db[REQUESTS_COLLECTION])

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
        except PyMongoError:
            logger.warning("MongoDB ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.client.close()
