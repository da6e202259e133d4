import logging
import os
import subprocess
from datetime import datetime
from typing import Sequence, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from season_scheduler.database import init_db
from season_scheduler.routes import scheduler
from season_scheduler.services.errors import ConflictError, SpecValidationError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Season Scheduler API")


# Get build info
def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        logger.debug("git unavailable, falling back to build timestamp")

    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scheduler.router, prefix="/api", tags=["scheduler"])


# ============================================================================
# Error mapping
# ============================================================================


def format_error_location(loc: Sequence[Union[str, int]]) -> str:
    """("body", "games", 0, "homeTeamSeasonId") -> "games[0].homeTeamSeasonId" """
    path = ""
    for part in loc:
        if part in ("body", "query", "path", "header"):
            continue
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


@app.exception_handler(SpecValidationError)
async def handle_spec_validation_error(request: Request, exc: SpecValidationError):
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    content = {"detail": first.get("msg", "Invalid request")}
    field = format_error_location(first.get("loc", ()))
    if field:
        content["field"] = field
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(ConflictError)
async def handle_conflict_error(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    init_db()
    for r in app.routes:
        methods = getattr(r, "methods", None)
        path = getattr(r, "path", None)
        if path and methods:
            logger.debug("%-20s %s", ", ".join(sorted(methods)), path)
    logger.info("Season Scheduler API started (build %s)", BUILD_HASH)


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": "Season Scheduler API", "build_hash": BUILD_HASH, "status": "healthy"}
