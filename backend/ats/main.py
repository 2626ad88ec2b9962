import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ats.config import settings
from ats.database import SessionLocal, init_db
from ats.errors import LifecycleError
from ats.routers import applications, audit, fields, jobs, pipeline, public
from ats.services.container import Services

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("ats")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(settings.db_path)
    logger.info("Database ready at %s", settings.db_path)
    services = Services(settings, SessionLocal)
    services.start()
    app.state.services = services
    yield
    services.shutdown()


app = FastAPI(
    title="Applicant Tracking",
    description="Job postings, dynamic application forms, a hiring pipeline and an audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(jobs.router, prefix=settings.api_prefix)
app.include_router(fields.router, prefix=settings.api_prefix)
app.include_router(public.router, prefix=settings.api_prefix)
app.include_router(applications.router, prefix=settings.api_prefix)
app.include_router(pipeline.router, prefix=settings.api_prefix)
app.include_router(audit.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
