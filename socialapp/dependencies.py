from fastapi import Depends

from . import core
from .relationships import RelationshipManager
from .store import UserStore


def get_user_store() -> UserStore:
    """A store bound to the current MongoDB client, one per request."""
    return UserStore(core.get_database(), use_transactions=core.MONGO_USE_TRANSACTIONS)


def get_relationship_manager(store: UserStore = Depends(get_user_store)) -> RelationshipManager:
    return RelationshipManager(store)
