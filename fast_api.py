import time
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from cache import SearchResultCache
from config import CF_DOMAIN, SEARCH_CACHE_TTL, SEARCH_CACHE_MAXSIZE
from deps import get_journal
from handlers.audio import router as audio_router
from handlers.auth import router as auth_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await get_journal().ensure_indexes()
    except Exception as e:
        logger.error(f"Could not create entry indexes: {e}")
    yield


api = FastAPI(title="Audio Journal", lifespan=lifespan)

# Owned here and handed to handlers through deps.get_search_cache
api.state.search_cache = SearchResultCache(ttl=SEARCH_CACHE_TTL, maxsize=SEARCH_CACHE_MAXSIZE)

api.include_router(auth_router)
api.include_router(audio_router)

api.add_middleware(
    CORSMiddleware,
    allow_origins=[f"{CF_DOMAIN}"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Cache"],
)


@api.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.0f} ms)")
    return response


@api.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error"},
    )


@api.get("/")
async def root():
    return JSONResponse({"message": "Audio journal API is running"})
