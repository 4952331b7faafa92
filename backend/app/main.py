# app/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import os

from app.core.config import configure_logging, get_scheduling_settings
from app.services.scheduling.cache import BusinessDataCache
from app.services.scheduling.engine import SchedulingEngine
from app.services.scheduling.sql_store import SqlSchedulingStore

#Import Routers
from app.api.v1 import appointments
from app.api.v1 import admin

# Load environment variables
load_dotenv()
configure_logging()


def build_engine(store=None, settings=None) -> SchedulingEngine:
    """One cache, coalescer and engine per process."""
    settings = settings or get_scheduling_settings()
    return SchedulingEngine(
        store or SqlSchedulingStore(),
        cache=BusinessDataCache.from_settings(settings),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine()
    yield
    await app.state.engine.shutdown()


# Create FastAPI app
app = FastAPI(
    title="Scheduling Engine API",
    description="Availability and booking tools for an AI phone receptionist",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
#Include routers
app.include_router(appointments.router, prefix="/vapi", tags=["appointments"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Scheduling Engine API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "environment": os.getenv("APP_ENV", "unknown")
    }
