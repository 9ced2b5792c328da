from typing import List

from fastapi import APIRouter, Depends

from ..auth import require_self
from ..dependencies import get_relationship_manager
from ..models import parse_user_id
from ..ratelimit import limit_per_user
from ..relationships import RelationshipManager
from ..schemas.users import MessageOut, UserOut, UserSummaryOut

router = APIRouter()


@router.get('/{user_id}/non-friends', response_model=List[UserSummaryOut])
async def list_non_friends(user_id: str, manager: RelationshipManager = Depends(get_relationship_manager)):
    users = await manager.list_non_friends(parse_user_id(user_id))
    return [UserSummaryOut.from_doc(u) for u in users]


@router.get('/{user_id}/friends', response_model=List[UserOut])
async def get_friends(user_id: str, manager: RelationshipManager = Depends(get_relationship_manager)):
    friends = await manager.get_friends(parse_user_id(user_id))
    return [UserOut.from_doc(f) for f in friends]


@router.get('/{user_id}/friend-requests', response_model=List[UserSummaryOut])
async def get_friend_requests(user_id: str, manager: RelationshipManager = Depends(get_relationship_manager)):
    requesters = await manager.get_incoming_requests(parse_user_id(user_id))
    return [UserSummaryOut.from_doc(u) for u in requesters]


@router.post('/{user_id}/friend-requests/{target_user_id}', response_model=MessageOut,
             dependencies=[Depends(limit_per_user('send_request'))])
async def send_friend_request(
    user_id: str,
    target_user_id: str,
    current_user: dict = Depends(require_self),
    manager: RelationshipManager = Depends(get_relationship_manager),
):
    message = await manager.send_request(parse_user_id(user_id), parse_user_id(target_user_id))
    return {'message': message}


@router.delete('/{user_id}/friend-requests/{target_user_id}', response_model=MessageOut,
               dependencies=[Depends(limit_per_user('rescind_request'))])
async def rescind_friend_request(
    user_id: str,
    target_user_id: str,
    current_user: dict = Depends(require_self),
    manager: RelationshipManager = Depends(get_relationship_manager),
):
    message = await manager.rescind_request(parse_user_id(user_id), parse_user_id(target_user_id))
    return {'message': message}


@router.delete('/{user_id}/friend-requests-in/{target_user_id}', response_model=MessageOut,
               dependencies=[Depends(limit_per_user('deny_request'))])
async def deny_friend_request(
    user_id: str,
    target_user_id: str,
    current_user: dict = Depends(require_self),
    manager: RelationshipManager = Depends(get_relationship_manager),
):
    message = await manager.deny_request(parse_user_id(user_id), parse_user_id(target_user_id))
    return {'message': message}


@router.post('/{user_id}/friends/{target_user_id}', response_model=MessageOut,
             dependencies=[Depends(limit_per_user('accept_request'))])
async def accept_friend_request(
    user_id: str,
    target_user_id: str,
    current_user: dict = Depends(require_self),
    manager: RelationshipManager = Depends(get_relationship_manager),
):
    message = await manager.accept_request(parse_user_id(user_id), parse_user_id(target_user_id))
    return {'message': message}


@router.delete('/{user_id}/friends/{target_user_id}', response_model=MessageOut,
               dependencies=[Depends(limit_per_user('remove_friend'))])
async def remove_friend(
    user_id: str,
    target_user_id: str,
    current_user: dict = Depends(require_self),
    manager: RelationshipManager = Depends(get_relationship_manager),
):
    message = await manager.remove_friend(parse_user_id(user_id), parse_user_id(target_user_id))
    return {'message': message}
