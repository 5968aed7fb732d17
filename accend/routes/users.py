#!/usr/bin/env python3
"""User management routes (admin only)."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accend.auth import hash_password
from accend.db import get_session
from accend.deps import require_roles
from accend.errors import EmailExists, UserNotFound
from accend.models import Role, User
from accend.schemas.users import CreateUserRequest, UpdateUserRequest, UserOut

router = APIRouter(prefix="/api/users", tags=["users"])

AdminOnly = Depends(require_roles(Role.admin))


@router.get("/", response_model=list[UserOut], dependencies=[AdminOnly])
async def list_users(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(User).order_by(User.created_at))
    return [UserOut.from_user(u) for u in result.scalars()]


@router.post("/", response_model=UserOut, status_code=201, dependencies=[AdminOnly])
async def create_user(body: CreateUserRequest, session: AsyncSession = Depends(get_session)):
    email = body.email.lower()
    existing = await session.execute(select(User).where(func.lower(User.email) == email))
    if existing.scalar_one_or_none():
        raise EmailExists()
    user = User(
        name=body.name,
        email=email,
        hashed_password=hash_password(body.password),
        role=body.role,
        access_level=body.access_level,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return UserOut.from_user(user)


@router.patch("/{user_id}", response_model=UserOut, dependencies=[AdminOnly])
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    session: AsyncSession = Depends(get_session),
):
    user = await session.get(User, user_id)
    if not user:
        raise UserNotFound()
    if body.role is not None:
        user.role = body.role
    if body.access_level is not None:
        user.access_level = body.access_level
    if body.is_active is not None:
        user.is_active = body.is_active
    if body.password:
        if len(body.password) < 6:
            raise HTTPException(status_code=422, detail="Password must be at least 6 characters")
        user.hashed_password = hash_password(body.password)
    await session.commit()
    await session.refresh(user)
    return UserOut.from_user(user)


@router.delete("/{user_id}", status_code=204, dependencies=[AdminOnly])
async def delete_user(user_id: str, session: AsyncSession = Depends(get_session)):
    user = await session.get(User, user_id)
    if not user:
        raise UserNotFound()
    await session.delete(user)
    await session.commit()
