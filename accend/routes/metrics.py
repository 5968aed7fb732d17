#!/usr/bin/env python3
"""Dashboard metrics routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from accend.db import get_session
from accend.deps import Clock, CurrentUser, require_roles
from accend.models import Role
from accend.schemas.metrics import MetricsMe, UsageAnalytics
from accend.services import dashboard

router = APIRouter(prefix="/api/metrics", tags=["metrics"])


@router.get("/me", response_model=MetricsMe)
async def metrics_me(user: CurrentUser, clock: Clock, session: AsyncSession = Depends(get_session)):
    return MetricsMe.model_validate(await dashboard.metrics_for_user(session, user.id, clock()))


@router.get("/usage", response_model=UsageAnalytics, dependencies=[Depends(require_roles(Role.admin))])
async def usage(clock: Clock, session: AsyncSession = Depends(get_session)):
    return UsageAnalytics.model_validate(await dashboard.usage_analytics(session, clock()))
