import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.errors import DomainError
from app.routes import app_config, guest, joint_unpack, solo_prep

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger("app.main")

app = FastAPI(title="Parity API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"[{request.method} {request.url.path}] {exc.code}: {exc.message}")
    else:
        logger.info(f"[{request.method} {request.url.path}] {exc.code}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


app.include_router(app_config.router)
app.include_router(solo_prep.router)
app.include_router(guest.router)
app.include_router(joint_unpack.router)


# ---------- Health check ---------- #

@app.get("/health")
async def health():
    return {"status": "ok"}
