import logging
from contextlib import asynccontextmanager

import aiosqlite
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from medrecords.config import LOG_LEVEL
from medrecords.database import close_db, init_db, open_db
from medrecords.errors import STORAGE_ERROR_MESSAGE, PatientRecordError, StorageError, ValidationError
from medrecords.routers import patients

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting patient records service...")
    app.state.db = await open_db()
    await init_db(app.state.db)
    logger.info("Database initialized")
    yield
    await close_db(app.state.db)
    app.state.db = None
    logger.info("Patient records service shut down")


app = FastAPI(
    title="Patient Records",
    description="Patient record management: CRUD, search, statistics and audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(patients.router)


@app.exception_handler(PatientRecordError)
async def handle_record_error(request: Request, exc: PatientRecordError):
    if isinstance(exc, StorageError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=exc.status_code, content={"error": STORAGE_ERROR_MESSAGE})
    content = {"error": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(aiosqlite.Error)
async def handle_store_error(request: Request, exc: aiosqlite.Error):
    logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": STORAGE_ERROR_MESSAGE})
