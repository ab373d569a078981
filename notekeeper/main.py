"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notekeeper.config import get_settings
from notekeeper.dependencies import VaultClient, logger
from notekeeper.events.router import router as events_router
from notekeeper.notes.store import VaultNoteStore
from notekeeper.timelines.cache import TimelineCache
from notekeeper.timelines.linker import TimelineLinker
from notekeeper.timelines.queue import KeyedOperationQueue
from notekeeper.timelines.router import router as timelines_router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Compose the store, timeline cache, queue and linker for this app.

    They live exactly as long as the application; tests get fresh ones
    with every TestClient.
    """
    store = VaultNoteStore(VaultClient(vault_path=settings.vault_path))
    queue = KeyedOperationQueue()
    app.state.store = store
    app.state.linker = TimelineLinker(store=store, cache=TimelineCache(), queue=queue)
    logger.info("app_startup", extra={"vault_path": str(settings.vault_path)})
    yield
    await queue.drain()
    logger.info("app_shutdown")


app = FastAPI(title="Notekeeper", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events_router)
app.include_router(timelines_router)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "0.1.0",
        "vault_path": str(settings.vault_path),
    }
