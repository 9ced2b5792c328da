"""
MongoDB access for user documents.

UserStore is the only module that talks to the driver. Driver errors are
logged here and surface as InternalError so callers only ever deal with
the app's own error taxonomy.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Iterable, List, Optional, Tuple

from bson import Binary, ObjectId
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .exceptions import Conflict, InternalError
from .models import IMAGES_COLLECTION, RELATIONSHIP_FIELDS, USERS_COLLECTION, RelationshipEdit

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _translate_errors(action: str, **context):
    try:
        yield
    except PyMongoError as e:
        logger.error({'msg': 'store_failure', 'action': action, 'error': str(e), **context})
        raise InternalError(context={'action': action, **context}) from e


class UserStore:
    def __init__(self, db, use_transactions: bool = False):
        self.users = db[USERS_COLLECTION]
        self.images = db[IMAGES_COLLECTION]
        self.use_transactions = use_transactions

    async def ensure_indexes(self):
        async with _translate_errors('ensure_indexes'):
            await self.users.create_index([('email', ASCENDING)], unique=True)
            await self.images.create_index([('user_id', ASCENDING), ('kind', ASCENDING)], unique=True)

    # ---- reads ----

    async def find_by_id(self, user_id: ObjectId, projection: Optional[dict] = None) -> Optional[dict]:
        async with _translate_errors('find_by_id', user_id=str(user_id)):
            return await self.users.find_one({'_id': user_id}, projection)

    async def find_by_email(self, email: str) -> Optional[dict]:
        async with _translate_errors('find_by_email'):
            return await self.users.find_one({'email': email})

    async def find(self, query: dict, projection: Optional[dict] = None) -> List[dict]:
        async with _translate_errors('find'):
            cursor = self.users.find(query, projection)
            return await cursor.to_list(length=None)

    async def populate(self, ids: Iterable[ObjectId], projection: Optional[dict] = None) -> List[dict]:
        """Resolve identifiers into documents, keeping the order of ``ids``.

        Identifiers that no longer resolve are skipped.
        """
        ids = list(ids)
        if not ids:
            return []
        docs = await self.find({'_id': {'$in': ids}}, projection)
        by_id = {doc['_id']: doc for doc in docs}
        return [by_id[i] for i in ids if i in by_id]

    # ---- writes ----

    async def insert(self, doc: dict) -> ObjectId:
        async with _translate_errors('insert'):
            try:
                result = await self.users.insert_one(doc)
            except DuplicateKeyError as e:
                raise Conflict('Email already registered') from e
        return result.inserted_id

    async def update_fields(self, user_id: ObjectId, fields: dict) -> bool:
        async with _translate_errors('update_fields', user_id=str(user_id)):
            result = await self.users.update_one({'_id': user_id}, {'$set': fields})
        return result.matched_count > 0

    async def delete(self, user_id: ObjectId) -> bool:
        async with _translate_errors('delete', user_id=str(user_id)):
            result = await self.users.delete_one({'_id': user_id})
            await self.images.delete_many({'user_id': user_id})
        return result.deleted_count > 0

    async def pull_references(self, user_id: ObjectId):
        """Drop ``user_id`` from every user's relationship lists."""
        update = {'$pullAll': {field: [user_id] for field in RELATIONSHIP_FIELDS}}
        async with _translate_errors('pull_references', user_id=str(user_id)):
            await self.users.update_many({}, update)

    async def save_pair(self, first: RelationshipEdit, second: RelationshipEdit):
        """Persist a relationship edit that spans two user documents.

        With transactions enabled both updates commit or neither does.
        Without them the updates are issued concurrently and, if only one
        lands, the inverse of that edit is applied so writes made to the
        same document in the meantime survive.
        """
        if self.use_transactions:
            async with _translate_errors('save_pair', first=str(first.user_id), second=str(second.user_id)):
                async with await self._start_session() as session:
                    async with session.start_transaction():
                        await self._apply(first, session=session)
                        await self._apply(second, session=session)
            return

        results = await asyncio.gather(self._apply(first), self._apply(second), return_exceptions=True)
        failures = [r for r in results if isinstance(r, Exception)]
        if not failures:
            return

        for edit, result in zip((first, second), results):
            if not isinstance(result, Exception):
                await self._compensate(edit)
        logger.error({'msg': 'save_pair_failed', 'first': str(first.user_id),
                      'second': str(second.user_id), 'error': str(failures[0])})
        raise InternalError(context={'action': 'save_pair'}) from failures[0]

    async def _start_session(self):
        return await self.users.database.client.start_session()

    async def _apply(self, edit: RelationshipEdit, session=None):
        if not edit:
            return
        await self.users.update_one({'_id': edit.user_id}, edit.to_update(), session=session)

    async def _compensate(self, edit: RelationshipEdit):
        try:
            await self._apply(edit.inverse())
            logger.warning({'msg': 'save_pair_compensated', 'user_id': str(edit.user_id)})
        except PyMongoError as e:
            # the pair is now one-sided; leave a trace for manual repair
            logger.error({'msg': 'compensation_failed', 'user_id': str(edit.user_id),
                          'snapshot': {k: [str(i) for i in v] for k, v in edit.snapshot.items()},
                          'error': str(e)})

    # ---- images ----

    async def put_image(self, user_id: ObjectId, kind: str, data: bytes, content_type: str):
        async with _translate_errors('put_image', user_id=str(user_id), kind=kind):
            await self.images.replace_one(
                {'user_id': user_id, 'kind': kind},
                {'user_id': user_id, 'kind': kind, 'data': Binary(data), 'content_type': content_type},
                upsert=True,
            )
            await self.users.update_one({'_id': user_id}, {'$set': {f'{kind}_type': content_type}})

    async def get_image(self, user_id: ObjectId, kind: str) -> Optional[Tuple[bytes, str]]:
        async with _translate_errors('get_image', user_id=str(user_id), kind=kind):
            doc = await self.images.find_one({'user_id': user_id, 'kind': kind})
        if doc is None:
            return None
        return bytes(doc['data']), doc['content_type']
