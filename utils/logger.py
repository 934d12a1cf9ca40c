import logging
from datetime import date
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response, JSONResponse

from config import config

# Body previews longer than this are cut in request logs
MAX_LOGGED_BODY = 200

# Formatted Data
formatted_date = date.today().strftime("%Y-%m-%d")

# Create logger
logger = logging.getLogger("api_logger")
logger.setLevel(logging.DEBUG)  # Capture all levels

# Formatter
formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")

# Console handler (for all levels)
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.DEBUG)
console_handler.setFormatter(formatter)

# Avoid adding handlers multiple times if reloaded
if not logger.handlers:
    logger.addHandler(console_handler)

    if config.LOG_TO_FILE:
        file_handler = logging.FileHandler(f"api-{formatted_date}.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def preview_body(raw: bytes, content_type: str) -> str:
    """Short printable form of a request body for the access log."""
    if (
        "multipart/form-data" in content_type
        or "application/octet-stream" in content_type
        or "application/pdf" in content_type
    ):
        return "<binary content omitted>"
    try:
        body_str = raw.decode("utf-8")
    except UnicodeDecodeError:
        return "<non-UTF8 data omitted>"
    if len(body_str) > MAX_LOGGED_BODY:
        return f"{body_str[:MAX_LOGGED_BODY]}... ({len(body_str)} chars)"
    return body_str


# Request/Response Logging Middleware
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            request_body = await request.body()
            content_type = request.headers.get("content-type", "")
            body_str = preview_body(request_body, content_type)

            logger.info(
                f"➡️ Request: {request.method} {request.url.path} | Content-Type: {content_type} | Body: {body_str}"
            )

            response: Response = await call_next(request)

            process_time = (time.time() - start_time) * 1000
            logger.info(
                f"⬅️ Response: {request.method} {request.url.path} | Status: {response.status_code} | Time: {process_time:.2f}ms"
            )

            return response

        except Exception as e:
            logger.error(
                f"❌ Error in {request.method} {request.url.path}: {str(e)}",
                exc_info=True,
            )

            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error"},
            )
