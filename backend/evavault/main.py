from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import evavault.models  # noqa: F401  register SQLModel tables

from evavault.config import get_settings
from evavault.db import create_db_and_tables
from evavault.routers import health, medical_data

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    create_db_and_tables()
    logger.info(
        "Eva vault backend started (kdf=%s, pbkdf2_iterations=%d)",
        settings.kdf_algorithm,
        settings.pbkdf2_iterations,
    )
    yield


app = FastAPI(
    title="Eva Vault",
    description="Encrypted medical data storage for the Eva platform",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        f"https://{settings.domain}",
        "http://localhost:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(medical_data.router)
