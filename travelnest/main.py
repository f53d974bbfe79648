from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
import logging
from travelnest.core.config import settings
from travelnest.core.errors import TravelNestError
from travelnest.api import trips, invitations, notifications

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="TravelNest API", version="1.0.0")

ALLOWED_ORIGINS = settings.get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


def _with_cors(request: Request, response: JSONResponse) -> JSONResponse:
    """Error responses built here skip the middleware, so add CORS headers by hand."""
    origin = request.headers.get("origin")
    if origin and origin in ALLOWED_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


@app.exception_handler(TravelNestError)
async def travelnest_error_handler(request: Request, exc: TravelNestError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.reason}: {exc.message}")
    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "reason": exc.reason},
    )
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return _with_cors(request, response)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    response = JSONResponse(
        status_code=500,
        content={"detail": "A database error occurred. Please try again.", "reason": "dependency_failure"},
    )
    return _with_cors(request, response)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "reason": "internal_error"},
    )
    return _with_cors(request, response)


app.include_router(trips.router, prefix="/trips", tags=["trips"])
app.include_router(invitations.router, prefix="/invitations", tags=["invitations"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])


@app.get("/")
async def root():
    return {"message": "TravelNest API", "version": "1.0.0"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
