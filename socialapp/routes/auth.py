from fastapi import APIRouter, Depends, Form, HTTPException

from ..crud import authenticate_user
from ..dependencies import get_user_store
from ..ratelimit import limit_per_ip
from ..schemas.users import TokenOut
from ..store import UserStore

router = APIRouter()


@router.post('/login', response_model=TokenOut, dependencies=[Depends(limit_per_ip('login'))])
async def login(
    email: str = Form(...),
    password: str = Form(...),
    store: UserStore = Depends(get_user_store),
):
    token = await authenticate_user(store, email, password)
    if not token:
        raise HTTPException(status_code=401, detail='Invalid credentials')
    return token
