from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ValidationError

USERS_COLLECTION = 'users'
IMAGES_COLLECTION = 'user_images'

FRIENDS = 'friends'
FRIEND_REQUESTS_IN = 'friend_requests_in'
FRIEND_REQUESTS_OUT = 'friend_requests_out'
RELATIONSHIP_FIELDS = (FRIENDS, FRIEND_REQUESTS_IN, FRIEND_REQUESTS_OUT)

# relation of one user to another, seen from the first user's record
NONE = 'none'
IS_FRIEND = 'friends'
PENDING_OUT = 'pending_out'
PENDING_IN = 'pending_in'

IMAGE_KINDS = ('profile_picture', 'banner')

SUMMARY_FIELDS = ('first_name', 'last_name', 'profile_picture_type', *RELATIONSHIP_FIELDS)
PUBLIC_FIELDS = (*SUMMARY_FIELDS, 'bio', 'birthdate', 'banner_type', 'date_created')

SUMMARY_PROJECTION = {field: 1 for field in SUMMARY_FIELDS}
PUBLIC_PROJECTION = {field: 1 for field in PUBLIC_FIELDS}
RELATIONSHIP_PROJECTION = {field: 1 for field in ('first_name', 'last_name', *RELATIONSHIP_FIELDS)}


def parse_user_id(value) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationError('Invalid user id', context={'user_id': value})
    return ObjectId(value)


def new_user_document(first_name: str, last_name: str, email: str, password_hash: str,
                      birthdate: Optional[date] = None) -> dict:
    # BSON has no plain date type
    born = datetime(birthdate.year, birthdate.month, birthdate.day) if birthdate else None
    return {
        'first_name': first_name,
        'last_name': last_name,
        'email': email,
        'password': password_hash,
        'birthdate': born,
        'bio': '',
        'profile_picture_type': None,
        'banner_type': None,
        'date_created': datetime.now(timezone.utc),
        FRIENDS: [],
        FRIEND_REQUESTS_IN: [],
        FRIEND_REQUESTS_OUT: [],
    }


class User(BaseModel):
    """The relationship-relevant slice of a user document."""
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True, extra='ignore')

    id: ObjectId = Field(alias='_id')
    first_name: str = ''
    last_name: str = ''
    friends: List[ObjectId] = Field(default_factory=list)
    friend_requests_in: List[ObjectId] = Field(default_factory=list)
    friend_requests_out: List[ObjectId] = Field(default_factory=list)

    @classmethod
    def from_doc(cls, doc: dict) -> 'User':
        return cls.model_validate(doc)

    def relation_to(self, other_id: ObjectId) -> str:
        if other_id in self.friends:
            return IS_FRIEND
        if other_id in self.friend_requests_out:
            return PENDING_OUT
        if other_id in self.friend_requests_in:
            return PENDING_IN
        return NONE

    def relationship_snapshot(self) -> Dict[str, List[ObjectId]]:
        return {field: list(getattr(self, field)) for field in RELATIONSHIP_FIELDS}


class RelationshipEdit:
    """
    Identifiers to add to and remove from one user's relationship lists.

    Additions become ``$addToSet`` so a list never holds the same id twice,
    removals become ``$pullAll`` so removing an absent id is a no-op.
    The snapshot of the lists taken before the edit is kept so a failed
    two-document write can be undone.
    """

    def __init__(self, user: User):
        self.user_id = user.id
        self.snapshot = user.relationship_snapshot()
        self.additions: Dict[str, List[ObjectId]] = {}
        self.removals: Dict[str, List[ObjectId]] = {}

    def add(self, field: str, other_id: ObjectId) -> 'RelationshipEdit':
        self._check(field, self.removals)
        self.additions.setdefault(field, []).append(other_id)
        return self

    def remove(self, field: str, other_id: ObjectId) -> 'RelationshipEdit':
        self._check(field, self.additions)
        self.removals.setdefault(field, []).append(other_id)
        return self

    @staticmethod
    def _check(field: str, other_side: dict):
        if field not in RELATIONSHIP_FIELDS:
            raise ValueError(f'{field} is not a relationship field')
        # MongoDB rejects an update touching the same path twice
        if field in other_side:
            raise ValueError(f'{field} cannot be added to and removed from in one edit')

    def to_update(self) -> dict:
        update = {}
        if self.additions:
            update['$addToSet'] = {field: {'$each': ids} for field, ids in self.additions.items()}
        if self.removals:
            update['$pullAll'] = {field: ids for field, ids in self.removals.items()}
        return update

    def inverse(self) -> 'RelationshipEdit':
        """The edit that undoes this one and touches nothing else.

        Ids that were already present before an addition, or already absent
        before a removal, are left alone since this edit never changed them.
        """
        undo = RelationshipEdit.__new__(RelationshipEdit)
        undo.user_id = self.user_id
        undo.snapshot = self.snapshot
        undo.additions = {}
        undo.removals = {}
        for field, ids in self.additions.items():
            added = [i for i in ids if i not in self.snapshot[field]]
            if added:
                undo.removals[field] = added
        for field, ids in self.removals.items():
            removed = [i for i in ids if i in self.snapshot[field]]
            if removed:
                undo.additions[field] = removed
        return undo

    def __bool__(self):
        return bool(self.additions or self.removals)
