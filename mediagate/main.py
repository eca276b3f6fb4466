import asyncio
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mediagate.api import download, health
from mediagate.config.settings import CONFIG_PATH, config
from mediagate.core.logging import REQUEST_ID_HEADER, log_error, new_request_id, setup_logging
from mediagate.core.state import state
from mediagate.i18n import i18n
from mediagate.infra.http import close_http_client
from mediagate.infra.redis import close_redis, init_redis
from mediagate.services.errors import DownloaderError
from mediagate.services.ytdlp import SubprocessExecutor
from mediagate.utils.locale import get_locale

setup_logging(config.logging)

app = FastAPI(
    title=config.api.title,
    description=config.api.description,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", REQUEST_ID_HEADER],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = new_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.exception_handler(DownloaderError)
async def downloader_error_handler(request: Request, exc: DownloaderError):
    """Generic boundary for failures without a dedicated user message"""
    log_error(request, f"{type(exc).__name__}: {exc}")
    locale = get_locale(request.headers.get("accept-language"))
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": i18n.get("error.download_failed", locale=locale, reason=exc.message),
            "error": type(exc).__name__,
        }
    )


# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(download.router, tags=["Download"])


async def detect_version(cmd: list) -> str:
    try:
        result = await SubprocessExecutor.run(cmd, timeout=10.0)
    except (OSError, asyncio.TimeoutError):
        return "unavailable"
    lines = result.stdout.decode(errors="ignore").strip().splitlines()
    return lines[0] if result.returncode == 0 and lines else "unavailable"


@app.on_event("startup")
async def startup_event():
    # Write the effective configuration on first start so it can be edited
    config_dir = os.path.dirname(CONFIG_PATH)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)
    if not os.path.exists(CONFIG_PATH):
        config.save_to_file(CONFIG_PATH)

    state.js_runtime = config.ytdlp.js_runtime
    state.ytdlp_version = await detect_version([config.ytdlp.binary, "--version"])
    state.ffmpeg_version = await detect_version([config.ytdlp.ffmpeg_binary, "-version"])

    await init_redis()


@app.on_event("shutdown")
async def shutdown_event():
    await close_redis()
    await close_http_client()
