"""
Friend relationship management.

Each user document holds three id lists: ``friends``, ``friend_requests_in``
and ``friend_requests_out``. Between two users A and B the lists move through

    none --send(A->B)--> pending(A->B) --accept(by B)--> friends
    pending(A->B) --rescind(by A) / deny(by B)--> none
    friends --remove--> none

and every mutation updates both documents so the lists stay symmetric.
"""
import functools
import logging
from typing import List

from bson import ObjectId

from .core import RELATIONSHIP_OPERATIONS
from .exceptions import Conflict, NotFound, SocialAppError, ValidationError
from .models import FRIENDS, FRIEND_REQUESTS_IN, FRIEND_REQUESTS_OUT, RelationshipEdit, User
from .models.users import (
    NONE,
    PENDING_IN,
    PENDING_OUT,
    PUBLIC_PROJECTION,
    RELATIONSHIP_PROJECTION,
    SUMMARY_PROJECTION,
)
from .store import UserStore

logger = logging.getLogger(__name__)


def tracked(operation: str):
    """Count a relationship mutation by outcome."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                result = await func(*args, **kwargs)
            except SocialAppError as e:
                RELATIONSHIP_OPERATIONS.labels(operation=operation, outcome=type(e).__name__).inc()
                raise
            RELATIONSHIP_OPERATIONS.labels(operation=operation, outcome='ok').inc()
            return result
        return wrapper
    return decorator


class RelationshipManager:
    def __init__(self, store: UserStore):
        self.store = store

    async def _load(self, user_id: ObjectId) -> User:
        doc = await self.store.find_by_id(user_id, RELATIONSHIP_PROJECTION)
        if doc is None:
            raise NotFound(context={'user_id': str(user_id)})
        return User.from_doc(doc)

    async def _load_pair(self, first_id: ObjectId, second_id: ObjectId):
        return await self._load(first_id), await self._load(second_id)

    # ---- queries ----

    async def list_non_friends(self, user_id: ObjectId) -> List[dict]:
        """Every user except ``user_id`` and its friends, as summaries."""
        user = await self._load(user_id)
        return await self.store.find({'_id': {'$nin': [user.id, *user.friends]}}, SUMMARY_PROJECTION)

    async def get_friends(self, user_id: ObjectId) -> List[dict]:
        user = await self._load(user_id)
        return await self.store.populate(user.friends, PUBLIC_PROJECTION)

    async def get_incoming_requests(self, user_id: ObjectId) -> List[dict]:
        user = await self._load(user_id)
        return await self.store.populate(user.friend_requests_in, SUMMARY_PROJECTION)

    # ---- mutations ----

    @tracked('send_request')
    async def send_request(self, from_id: ObjectId, to_id: ObjectId) -> str:
        if from_id == to_id:
            raise ValidationError('You cannot send a friend request to yourself')
        current, target = await self._load_pair(from_id, to_id)

        # check both records so a one-sided leftover still blocks a duplicate
        mine, theirs = current.relation_to(target.id), target.relation_to(current.id)
        if mine == PENDING_IN or theirs == PENDING_OUT:
            raise Conflict('This user has already sent you a friend request')
        if mine != NONE or theirs != NONE:
            raise Conflict()

        await self.store.save_pair(
            RelationshipEdit(current).add(FRIEND_REQUESTS_OUT, target.id),
            RelationshipEdit(target).add(FRIEND_REQUESTS_IN, current.id),
        )
        logger.info({'msg': 'friend_request_sent', 'from': str(current.id), 'to': str(target.id)})
        return f'Successfully {current.first_name} added {target.first_name}'

    @tracked('accept_request')
    async def accept_request(self, from_id: ObjectId, to_id: ObjectId) -> str:
        """``from_id`` accepts the request that ``to_id`` sent earlier."""
        current, requester = await self._load_pair(from_id, to_id)
        if requester.id not in current.friend_requests_in:
            raise NotFound('No pending friend request from this user',
                           context={'from': str(from_id), 'to': str(to_id)})

        await self.store.save_pair(
            RelationshipEdit(current)
            .remove(FRIEND_REQUESTS_IN, requester.id)
            .remove(FRIEND_REQUESTS_OUT, requester.id)
            .add(FRIENDS, requester.id),
            RelationshipEdit(requester)
            .remove(FRIEND_REQUESTS_OUT, current.id)
            .remove(FRIEND_REQUESTS_IN, current.id)
            .add(FRIENDS, current.id),
        )
        logger.info({'msg': 'friend_request_accepted', 'by': str(current.id), 'from': str(requester.id)})
        return f"{current.first_name} accepted {requester.first_name}'s friend request"

    @tracked('rescind_request')
    async def rescind_request(self, from_id: ObjectId, to_id: ObjectId) -> str:
        """``from_id`` withdraws its request to ``to_id``. A no-op if there is none."""
        current, target = await self._load_pair(from_id, to_id)
        await self.store.save_pair(
            RelationshipEdit(current).remove(FRIEND_REQUESTS_OUT, target.id),
            RelationshipEdit(target).remove(FRIEND_REQUESTS_IN, current.id),
        )
        logger.info({'msg': 'friend_request_rescinded', 'from': str(current.id), 'to': str(target.id)})
        return f'{current.first_name} rescinded the friend request to {target.first_name}'

    @tracked('deny_request')
    async def deny_request(self, from_id: ObjectId, to_id: ObjectId) -> str:
        """``from_id`` turns down the request ``to_id`` sent. A no-op if there is none."""
        current, requester = await self._load_pair(from_id, to_id)
        await self.store.save_pair(
            RelationshipEdit(current).remove(FRIEND_REQUESTS_IN, requester.id),
            RelationshipEdit(requester).remove(FRIEND_REQUESTS_OUT, current.id),
        )
        logger.info({'msg': 'friend_request_denied', 'by': str(current.id), 'from': str(requester.id)})
        return f"{current.first_name} denied {requester.first_name}'s friend request"

    @tracked('remove_friend')
    async def remove_friend(self, from_id: ObjectId, to_id: ObjectId) -> str:
        current, friend = await self._load_pair(from_id, to_id)
        await self.store.save_pair(
            RelationshipEdit(current).remove(FRIENDS, friend.id),
            RelationshipEdit(friend).remove(FRIENDS, current.id),
        )
        logger.info({'msg': 'friend_removed', 'by': str(current.id), 'friend': str(friend.id)})
        return f'{current.first_name} removed {friend.first_name} from their friends'

    @tracked('delete_user')
    async def delete_user(self, user_id: ObjectId) -> str:
        """Delete a user and every relationship edge pointing at it."""
        user = await self._load(user_id)
        # the user document outlives its references
        await self.store.pull_references(user.id)
        await self.store.delete(user.id)
        logger.info({'msg': 'user_deleted', 'user_id': str(user.id)})
        return f'{user.first_name} {user.last_name} was deleted'
