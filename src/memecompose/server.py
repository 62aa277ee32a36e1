"""HTTP front end — multipart upload in, composed mp4 out.

Endpoints:
  POST /api/process-video   video (required), template (optional PNG),
                            params (JSON string of flat parameters)
  GET  /health              liveness + ffmpeg availability

Run with ``memecompose serve`` or
``uvicorn --factory memecompose.server:create_app``.

Upload size is bounded twice. Starlette spools the multipart body to disk
while parsing the form, so requests whose Content-Length already exceeds
what two files at the per-file limit could need are refused with 413
before parsing starts. Each file is then checked against the per-file
limit while it is copied into the job's upload directory. Chunked requests
without a Content-Length are only held to the per-file check.
"""

import json
import logging
from pathlib import Path

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from .common import ffmpeg_available, inspect_template
from .compositor import compose_video
from .errors import EngineError, UploadTooLargeError, ValidationError
from .jobs import JobFiles
from .request import request_from_params
from .settings import Settings

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024
TEMPLATE_CONTENT_TYPES = {"image/png"}
DOWNLOAD_PREFIX = "samourais_meme_"

# Room for the params field and multipart framing on top of the files.
FORM_OVERHEAD_BYTES = 1024 * 1024


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _safe_suffix(filename: str | None, default: str) -> str:
    """File extension from the client's filename, if it's a plain one."""
    suffix = Path(filename or "").suffix.lower()
    if 1 < len(suffix) <= 6 and suffix[1:].isalnum():
        return suffix
    return default


def _parse_params(raw: str) -> dict:
    try:
        params = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise ValidationError(f"params is not valid JSON: {e.msg}") from e
    if not isinstance(params, dict):
        raise ValidationError("params must be a JSON object")
    return params


async def _save_upload(upload: UploadFile, dest: Path, limit: int) -> Path:
    """Stream an upload to disk, stopping as soon as it exceeds limit bytes."""
    size = 0
    with open(dest, "wb") as out:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > limit:
                raise UploadTooLargeError(
                    f"'{upload.filename}' exceeds the {limit // (1024 * 1024)}MB upload limit"
                )
            out.write(chunk)
    return dest


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app. Settings default to the environment."""
    settings = settings or Settings.from_env()
    app = FastAPI(title="memecompose")
    app.state.settings = settings
    max_request_bytes = 2 * settings.max_upload_bytes + FORM_OVERHEAD_BYTES

    # Registered before CORS so CORS wraps it and 413s keep their headers.
    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        length = request.headers.get("content-length", "")
        if length.isdigit() and int(length) > max_request_bytes:
            return _error(
                413,
                f"Request body exceeds the {max_request_bytes // (1024 * 1024)}MB limit",
            )
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(UploadTooLargeError)
    async def too_large_handler(request: Request, exc: UploadTooLargeError):
        return _error(413, str(exc))

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(EngineError)
    async def engine_handler(request: Request, exc: EngineError):
        logger.error("Composition failed: %s", exc)
        return _error(500, str(exc))

    @app.exception_handler(OSError)
    async def filesystem_handler(request: Request, exc: OSError):
        logger.exception("Filesystem error during composition")
        return _error(500, str(exc))

    @app.exception_handler(Exception)
    async def unexpected_handler(request: Request, exc: Exception):
        logger.exception("Unexpected error")
        return _error(500, str(exc) or type(exc).__name__)

    @app.get("/health")
    async def health():
        return {"status": "ok", "ffmpeg": await run_in_threadpool(ffmpeg_available)}

    @app.post("/api/process-video")
    async def process_video(
        video: UploadFile | None = File(None),
        template: UploadFile | None = File(None),
        params: str = Form("{}"),
    ):
        # Everything that can be checked without touching disk goes first.
        if video is None or not video.filename:
            raise ValidationError("No video file uploaded")
        if not (video.content_type or "").startswith("video/"):
            raise ValidationError("Only video files are allowed")
        if template is not None and template.filename:
            if template.content_type not in TEMPLATE_CONTENT_TYPES:
                raise ValidationError("Template must be a PNG image")
        else:
            template = None

        raw_params = _parse_params(params)
        request = request_from_params(raw_params)
        logger.info("Processing video with params: %s", raw_params)

        job = JobFiles(settings.upload_dir, settings.output_dir)
        done = False
        try:
            video_path = await _save_upload(
                video,
                job.upload_path(_safe_suffix(video.filename, ".mp4")),
                settings.max_upload_bytes,
            )
            template_path = None
            if template is not None:
                template_path = await _save_upload(
                    template, job.upload_path(".png"), settings.max_upload_bytes,
                )
                info = inspect_template(template_path)
                canvas = (request.canvas.width, request.canvas.height)
                if (info.width, info.height) != canvas:
                    logger.warning(
                        "Template is %dx%d but canvas is %dx%d; overlaying unscaled",
                        info.width, info.height, *canvas,
                    )

            output_path = job.output_path(".mp4")
            await run_in_threadpool(
                compose_video, request, video_path, output_path,
                template_path=template_path,
            )
            done = True
        finally:
            if not done:
                job.cleanup()

        return FileResponse(
            output_path,
            media_type="video/mp4",
            filename=f"{DOWNLOAD_PREFIX}{job.job_id}.mp4",
            background=BackgroundTask(job.cleanup),
        )

    return app
