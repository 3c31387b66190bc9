from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from vaxfamily.core.config import settings
from vaxfamily.core.exceptions import CareCoordinationError
from vaxfamily.core.logger import logger
from vaxfamily.db.session import init_db
from vaxfamily.middleware.log_middleware import LogMiddleware

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

from fastapi.middleware.cors import CORSMiddleware

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LogMiddleware)

@app.exception_handler(CareCoordinationError)
async def care_coordination_error_handler(request: Request, exc: CareCoordinationError):
    # Surfaced verbatim: kind, message and the offending field
    logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.on_event("startup")
async def startup_event():
    await init_db()

@app.get("/")
async def root():
    return {"message": "Welcome to VaxFamily API"}

from vaxfamily.api.api import api_router
app.include_router(api_router, prefix=settings.API_V1_STR)
