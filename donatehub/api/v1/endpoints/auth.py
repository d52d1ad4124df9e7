"""v1 authentication endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from donatehub.config import get_settings
from donatehub.core.dependencies import get_current_user
from donatehub.core.security import create_access_token, get_password_hash, verify_password
from donatehub.database import get_db
from donatehub.models import User
from donatehub.schemas import LoginRequest, Token, UserCreate, UserResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register a new donor account."""
    email = str(user_data.email).strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email already exists",
        )
    settings = get_settings()
    role = "admin" if settings.ADMIN_EMAIL and email == settings.ADMIN_EMAIL.lower() else "donor"
    user = User(
        name=user_data.name.strip(),
        email=email,
        hashed_password=get_password_hash(user_data.password),
        role=role,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, role)
    return user


@router.post("/login", response_model=Token)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Login and receive JWT access token."""
    email = str(login_data.email).strip().lower()
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user or not user.is_active or not verify_password(login_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )
    return Token(access_token=create_access_token(str(user.id)), role=user.role)


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: User = Depends(get_current_user),
):
    return current_user
