from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

PICTURE_URL = '/api/users/{user_id}/profile-picture'
BANNER_URL = '/api/users/{user_id}/banner'


def _ids(doc: dict, field: str) -> List[str]:
    return [str(i) for i in doc.get(field) or []]


def _as_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


class RegisterIn(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str = Field(min_length=6)
    passwordtwo: str
    birthdate: date

    @field_validator('first_name', 'last_name')
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('must not be empty')
        return value

    @field_validator('password')
    @classmethod
    def long_enough_trimmed(cls, value: str) -> str:
        if len(value.strip()) < 6:
            raise ValueError('Must be at least 6 characters')
        return value

    @model_validator(mode='after')
    def passwords_match(self):
        if self.password != self.passwordtwo:
            raise ValueError('Passwords do not match')
        return self


class ProfileUpdateIn(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=500)

    @field_validator('first_name', 'last_name')
    @classmethod
    def not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError('must not be empty')
        return value


class TokenOut(BaseModel):
    access_token: str
    token_type: str = 'bearer'


class MessageOut(BaseModel):
    message: str


class UserSummaryOut(BaseModel):
    """The projected view used by list endpoints."""
    id: str
    first_name: str
    last_name: str
    profile_picture: Optional[str] = None
    friends: List[str] = []
    friend_requests_in: List[str] = []
    friend_requests_out: List[str] = []

    @classmethod
    def from_doc(cls, doc: dict) -> 'UserSummaryOut':
        user_id = str(doc['_id'])
        return cls(
            id=user_id,
            first_name=doc.get('first_name', ''),
            last_name=doc.get('last_name', ''),
            profile_picture=PICTURE_URL.format(user_id=user_id) if doc.get('profile_picture_type') else None,
            friends=_ids(doc, 'friends'),
            friend_requests_in=_ids(doc, 'friend_requests_in'),
            friend_requests_out=_ids(doc, 'friend_requests_out'),
        )


class UserOut(UserSummaryOut):
    bio: Optional[str] = None
    birthdate: Optional[date] = None
    banner: Optional[str] = None
    date_created: Optional[datetime] = None

    @classmethod
    def from_doc(cls, doc: dict) -> 'UserOut':
        summary = UserSummaryOut.from_doc(doc)
        return cls(
            **summary.model_dump(),
            bio=doc.get('bio'),
            birthdate=_as_date(doc.get('birthdate')),
            banner=BANNER_URL.format(user_id=summary.id) if doc.get('banner_type') else None,
            date_created=doc.get('date_created'),
        )


class UserProfileOut(BaseModel):
    """A single user's page, with friends resolved to summaries."""
    id: str
    first_name: str
    last_name: str
    bio: Optional[str] = None
    birthdate: Optional[date] = None
    profile_picture: Optional[str] = None
    banner: Optional[str] = None
    date_created: Optional[datetime] = None
    friends: List[UserSummaryOut] = []

    @classmethod
    def from_doc(cls, doc: dict, friends: List[dict]) -> 'UserProfileOut':
        user = UserOut.from_doc(doc)
        return cls(
            **user.model_dump(exclude={'friends', 'friend_requests_in', 'friend_requests_out'}),
            friends=[UserSummaryOut.from_doc(f) for f in friends],
        )
