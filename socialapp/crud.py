import logging
from typing import Optional, Tuple

from bson import ObjectId
from fastapi import UploadFile

from .auth import create_access_token, hash_password, verify_password
from .exceptions import NotFound
from .images import image_validator
from .models import new_user_document
from .models.users import IMAGE_KINDS, PUBLIC_PROJECTION, SUMMARY_PROJECTION
from .store import UserStore

logger = logging.getLogger(__name__)


async def create_user(store: UserStore, payload) -> dict:
    doc = new_user_document(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=payload.email.lower(),
        password_hash=hash_password(payload.password),
        birthdate=payload.birthdate,
    )
    user_id = await store.insert(doc)
    logger.info({'msg': 'user_created', 'user_id': str(user_id)})
    return await store.find_by_id(user_id, PUBLIC_PROJECTION)


async def authenticate_user(store: UserStore, email: str, password: str) -> Optional[dict]:
    user = await store.find_by_email(email.strip().lower())
    if not user or not verify_password(password, user['password']):
        return None
    access = create_access_token({'id': str(user['_id']), 'email': user['email']})
    return {'access_token': access, 'token_type': 'bearer'}


async def get_user_profile(store: UserStore, user_id: ObjectId) -> Tuple[dict, list]:
    """Return the public user document and its friends as summaries."""
    user = await store.find_by_id(user_id, PUBLIC_PROJECTION)
    if not user:
        raise NotFound()
    friends = await store.populate(user.get('friends') or [], SUMMARY_PROJECTION)
    return user, friends


async def update_profile(store: UserStore, user_id: ObjectId, payload) -> dict:
    updates = payload.model_dump(exclude_none=True)
    if updates:
        if not await store.update_fields(user_id, updates):
            raise NotFound()
    user = await store.find_by_id(user_id, PUBLIC_PROJECTION)
    if not user:
        raise NotFound()
    return user


async def update_user_image(store: UserStore, user_id: ObjectId, kind: str, file: UploadFile) -> str:
    if kind not in IMAGE_KINDS:
        raise ValueError(f'unknown image kind {kind}')
    user = await store.find_by_id(user_id, {'_id': 1})
    if not user:
        raise NotFound()
    content, content_type = await image_validator.read(file)
    await store.put_image(user_id, kind, content, content_type)
    logger.info({'msg': 'image_updated', 'user_id': str(user_id), 'kind': kind, 'size': len(content)})
    label = 'profile picture' if kind == 'profile_picture' else 'banner'
    return f"Successfully updated user's {label}"


async def get_user_image(store: UserStore, user_id: ObjectId, kind: str) -> Tuple[bytes, str]:
    image = await store.get_image(user_id, kind)
    if image is None:
        raise NotFound('No image found')
    return image
