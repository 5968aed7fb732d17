#!/usr/bin/env python3
"""FastAPI router for the access request ledger and the resource catalog."""

import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from accend import catalog
from accend.clock import to_naive_utc
from accend.db import get_session
from accend.deps import Clock, CurrentUser, require_roles
from accend.models import RequestStatus, ResourceType, Role
from accend.schemas.access_requests import (
    AdminRequestOut,
    RequestCreate,
    RequestDecision,
    RequestOut,
    ResourceOut,
)
from accend.services import ledger

router = APIRouter(prefix="/api/requests", tags=["requests"])
resources_router = APIRouter(prefix="/api/resources", tags=["resources"])

AdminOnly = Depends(require_roles(Role.admin))


def _parse_dt(value: Optional[str], name: str) -> Optional[datetime.datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(datetime.datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        raise HTTPException(status_code=422, detail=f"{name} must be an ISO-8601 timestamp")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@resources_router.get("/", response_model=List[ResourceOut])
async def list_resources(user: CurrentUser):
    """Resources the caller may request (admins see all of them)."""
    return [ResourceOut.model_validate(r) for r in catalog.resources_for_role(user.role)]


@resources_router.get("/branches", response_model=List[str])
async def list_branch_refs(_user: CurrentUser, project_key: Optional[str] = Query(default=None, alias="projectKey")):
    return catalog.branch_refs(project_key)


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------

@router.get("/", response_model=List[RequestOut])
async def my_requests(
    user: CurrentUser,
    clock: Clock,
    statuses: List[RequestStatus] = Query(default=[]),
    resource_ids: List[str] = Query(default=[], alias="resourceIds"),
    resource_types: List[ResourceType] = Query(default=[], alias="resourceTypes"),
    start: Optional[str] = None,
    end: Optional[str] = None,
    q: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    """List the caller's requests, newest first, with optional filters."""
    flt = ledger.RequestFilter(
        statuses=statuses,
        resource_ids=resource_ids,
        resource_types=resource_types,
        start=_parse_dt(start, "start"),
        end=_parse_dt(end, "end"),
        q=q,
    )
    now = clock()
    return [RequestOut.from_request(r, now) for r in await ledger.list_requests_for(session, user.id, flt)]


@router.post("/", response_model=RequestOut, status_code=201)
async def create_request(
    body: RequestCreate,
    user: CurrentUser,
    clock: Clock,
    session: AsyncSession = Depends(get_session),
):
    now = clock()
    request = await ledger.create_request(
        session, user, body.resource_id, body.justification, body.duration_hours, now
    )
    return RequestOut.from_request(request, now)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

async def _with_requesters(session: AsyncSession, now: datetime.datetime, status=None) -> List[AdminRequestOut]:
    rows = await ledger.list_requests_with_requester(session, status)
    return [
        AdminRequestOut(
            request=RequestOut.from_request(r, now),
            requester_name=(u.name if u else None) or "User",
            requester_email=(u.email if u else None) or "",
        )
        for r, u in rows
    ]


@router.get("/admin", response_model=List[AdminRequestOut], dependencies=[AdminOnly])
async def admin_all_requests(clock: Clock, session: AsyncSession = Depends(get_session)):
    return await _with_requesters(session, clock())


@router.get("/admin/pending", response_model=List[AdminRequestOut], dependencies=[AdminOnly])
async def admin_pending_requests(clock: Clock, session: AsyncSession = Depends(get_session)):
    return await _with_requesters(session, clock(), RequestStatus.pending)


@router.post("/{request_id}/decision", response_model=RequestOut)
async def decide_request(
    request_id: str,
    body: RequestDecision,
    user: CurrentUser,
    clock: Clock,
    session: AsyncSession = Depends(get_session),
):
    """Approve or deny a pending request (admins only)."""
    now = clock()
    request = await ledger.decide_request(
        session, user, request_id, body.approve, body.decision_note, now
    )
    return RequestOut.from_request(request, now)
