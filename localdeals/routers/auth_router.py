# localdeals/routers/auth_router.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.schemas.user_schemas import UserCreate, UserLogin, TokenResponse, UserResponse
from localdeals.services.auth_service import register_user, authenticate_user, create_token_for
from localdeals.utils.get_user import get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])


# --------------------------
# REGISTER
# --------------------------
@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserCreate, db: AsyncSession = Depends(get_db)):
    user = await register_user(db, data)
    return {"message": "User registered successfully", "data": user}


# --------------------------
# LOGIN
# --------------------------
@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
async def login(data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Authenticate user and issue an access token."""
    user = await authenticate_user(db, data.email, data.password)
    return TokenResponse(access_token=create_token_for(user))


# --------------------------
# CURRENT USER
# --------------------------
@router.get("/me", response_model=UserResponse)
async def me(_user=Depends(get_current_user)):
    return {"message": "Current user fetched", "data": _user}
