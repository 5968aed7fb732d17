#!/usr/bin/env python3
"""Accend FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select

from accend.catalog import ENVIRONMENTS
from accend.config import settings
from accend.db import AsyncSessionLocal, dispose_db, init_db
from accend.errors import AccendError
from accend.routes import access_requests, bookings, metrics
from accend.routes import auth as auth_router
from accend.routes import users as users_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def _seed_environments() -> None:
    """Insert catalog environments that are missing from the database."""
    from accend.models import Environment

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(Environment.id))
        existing = set(result.scalars())
        missing = [e.to_row() for e in ENVIRONMENTS if e.id not in existing]
        if not missing:
            return
        session.add_all(missing)
        await session.commit()
        logger.info("Seeded environments: %s", ", ".join(e.id for e in missing))


async def _seed_admin() -> None:
    """Create the initial admin user if the users table is empty."""
    from accend.auth import hash_password
    from accend.models import Role, User

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User))
        if result.first() is not None:
            return  # users already exist, skip seeding

        admin = User(
            name="Administrator",
            email=settings.initial_admin_email.lower(),
            hashed_password=hash_password(settings.initial_admin_password),
            role=Role.admin,
            access_level=5,
            is_active=True,
        )
        session.add(admin)
        await session.commit()
        logger.warning(
            "⚠  Created initial admin user '%s'. "
            "Change the password immediately via /api/users/<id>.",
            settings.initial_admin_email,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    await _seed_environments()
    await _seed_admin()
    yield
    await dispose_db()


app = FastAPI(
    title="Accend API",
    description="Time-boxed access requests and shared environment bookings",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AccendError)
async def accend_error_handler(request: Request, exc: AccendError) -> JSONResponse:
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail, **exc.extra()},
    )


app.include_router(auth_router.router)
app.include_router(users_router.router)
app.include_router(access_requests.resources_router)
app.include_router(access_requests.router)
app.include_router(bookings.environments_router)
app.include_router(bookings.router)
app.include_router(metrics.router)


@app.get("/healthz")
def health() -> dict:
    return {"status": "ok"}
