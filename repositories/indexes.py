"""
Index definitions for every collection this service owns.

Run at startup from the application lifespan. Index builds are idempotent.
Each index is built on its own: a failure is logged with the index name and
the remaining indexes are still created.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from repositories import session_repository, token_repository, user_repository
from shared.logging import get_logger

log = get_logger(__name__)

# (collection, index name, keys, options)
INDEXES = [
    (user_repository.COLLECTION, "email_unique", [("email", ASCENDING)], {"unique": True}),
    (
        user_repository.COLLECTION,
        "phone_unique",
        [("phone", ASCENDING)],
        {"unique": True, "sparse": True},
    ),
    # newest-first lookup per (user, type)
    (
        token_repository.COLLECTION,
        "user_type_created",
        [("user_id", ASCENDING), ("token_type", ASCENDING), ("created_at", DESCENDING)],
        {},
    ),
    # bearer lookup for reset links
    (
        token_repository.COLLECTION,
        "type_hash",
        [("token_type", ASCENDING), ("token_hash", ASCENDING)],
        {},
    ),
    # at most one pending record per (user, type)
    (
        token_repository.COLLECTION,
        "one_pending_token_per_user_type",
        [("user_id", ASCENDING), ("token_type", ASCENDING)],
        {"unique": True, "partialFilterExpression": {"used_at": {"$type": "null"}}},
    ),
    # TTL: MongoDB removes the document once expires_at passes
    (
        token_repository.COLLECTION,
        "token_expiry_ttl",
        [("expires_at", ASCENDING)],
        {"expireAfterSeconds": 0},
    ),
    (
        session_repository.COLLECTION,
        "session_hash_unique",
        [("token_hash", ASCENDING)],
        {"unique": True},
    ),
    (
        session_repository.COLLECTION,
        "user_expiry",
        [("user_id", ASCENDING), ("expires_at", ASCENDING)],
        {},
    ),
    (
        session_repository.COLLECTION,
        "session_expiry_ttl",
        [("expires_at", ASCENDING)],
        {"expireAfterSeconds": 0},
    ),
]


async def ensure_indexes(db) -> list[str]:
    """Create every index in INDEXES. Returns the names that failed."""
    failed: list[str] = []
    for collection, name, keys, options in INDEXES:
        try:
            await db[collection].create_index(keys, name=name, **options)
        except PyMongoError as e:
            log.error(
                "ensure_index_failed",
                collection=collection,
                index=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            failed.append(name)

    if failed:
        log.warning("ensure_indexes_incomplete", failed=failed)
    else:
        log.info("ensure_indexes_completed", count=len(INDEXES))
    return failed
