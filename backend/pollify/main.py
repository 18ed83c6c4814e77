import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pollify.config import settings, setup_logging
from pollify.database import MongoStore, get_store
from pollify.errors import DuplicateResponse, FlowError, NotFound
from pollify.routers.flow import router as flow_router
from pollify.routers.forms import router as forms_router
from pollify.routers.responses import router as responses_router

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_store()
    if isinstance(store, MongoStore):
        await store.ensure_indexes()
    yield


app = FastAPI(title="Pollify Flow Backend (FastAPI + Mongo)", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FlowError)
async def flow_error_handler(request: Request, exc: FlowError):
    if isinstance(exc, NotFound):
        status_code = 404
    elif isinstance(exc, DuplicateResponse):
        status_code = 409
    else:
        status_code = 400
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "error": type(exc).__name__})


app.include_router(forms_router)
app.include_router(flow_router)
app.include_router(responses_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
