from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response

from ..auth import require_self
from ..crud import create_user, get_user_image, get_user_profile, update_profile, update_user_image
from ..dependencies import get_relationship_manager, get_user_store
from ..models import parse_user_id
from ..ratelimit import limit_per_user
from ..relationships import RelationshipManager
from ..schemas.users import MessageOut, ProfileUpdateIn, RegisterIn, UserOut, UserProfileOut
from ..store import UserStore

router = APIRouter()


@router.post('', response_model=dict)
async def register(payload: RegisterIn, store: UserStore = Depends(get_user_store)):
    user = await create_user(store, payload)
    return {'message': UserOut.from_doc(user).model_dump(mode='json')}


@router.get('/{user_id}', response_model=UserProfileOut)
async def get_user(user_id: str, store: UserStore = Depends(get_user_store)):
    user, friends = await get_user_profile(store, parse_user_id(user_id))
    return UserProfileOut.from_doc(user, friends)


@router.patch('/{user_id}', response_model=UserOut)
async def edit_user(
    user_id: str,
    payload: ProfileUpdateIn,
    current_user: dict = Depends(require_self),
    store: UserStore = Depends(get_user_store),
):
    user = await update_profile(store, parse_user_id(user_id), payload)
    return UserOut.from_doc(user)


@router.delete('/{user_id}', response_model=MessageOut)
async def delete_user(
    user_id: str,
    current_user: dict = Depends(require_self),
    manager: RelationshipManager = Depends(get_relationship_manager),
):
    message = await manager.delete_user(parse_user_id(user_id))
    return {'message': message}


# ==================== IMAGES ====================

@router.put('/{user_id}/banner', response_model=MessageOut,
            dependencies=[Depends(limit_per_user('image_upload'))])
async def edit_user_banner(
    user_id: str,
    image: UploadFile = File(None),
    current_user: dict = Depends(require_self),
    store: UserStore = Depends(get_user_store),
):
    message = await update_user_image(store, parse_user_id(user_id), 'banner', image)
    return {'message': message}


@router.put('/{user_id}/profile-picture', response_model=MessageOut,
            dependencies=[Depends(limit_per_user('image_upload'))])
async def edit_user_picture(
    user_id: str,
    image: UploadFile = File(None),
    current_user: dict = Depends(require_self),
    store: UserStore = Depends(get_user_store),
):
    message = await update_user_image(store, parse_user_id(user_id), 'profile_picture', image)
    return {'message': message}


@router.get('/{user_id}/banner')
async def get_banner(user_id: str, store: UserStore = Depends(get_user_store)):
    content, content_type = await get_user_image(store, parse_user_id(user_id), 'banner')
    return Response(content=content, media_type=content_type)


@router.get('/{user_id}/profile-picture')
async def get_profile_picture(user_id: str, store: UserStore = Depends(get_user_store)):
    content, content_type = await get_user_image(store, parse_user_id(user_id), 'profile_picture')
    return Response(content=content, media_type=content_type)
