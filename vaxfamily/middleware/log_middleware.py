import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from vaxfamily.core.logger import logger

class LogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Unhandled error on {request.method} {request.url.path}")
            raise

        process_time = time.time() - start_time

        # Set by the caller dependency once the bearer token is decoded
        caller = getattr(request.state, "caller", None)
        who = f"{caller.role.value}:{caller.id}" if caller else "anonymous"

        logger.info(
            f"Method: {request.method} | "
            f"Path: {request.url.path} | "
            f"Caller: {who} | "
            f"Status: {response.status_code} | "
            f"Duration: {process_time:.4f}s"
        )

        return response
