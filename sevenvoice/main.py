from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging

from .config import settings
from .db import init_db
from .errors import AppError, field_errors
from . import auth, billing, tts

logger = logging.getLogger("sevenvoice")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
logger.setLevel(settings.LOG_LEVEL.upper())

app = FastAPI(title="7Voice")
init_db()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not settings.ELEVENLABS_API_KEY and not settings.OPENAI_API_KEY:
    logger.warning("No TTS provider API key found, speech generation will not work")


@app.exception_handler(AppError)
def app_error(request: Request, exc: AppError):
    return JSONResponse(jsonable_encoder(exc.to_body()), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
def request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse({"message": "Validation error", "errors": field_errors(exc.errors())}, status_code=400)


@app.exception_handler(Exception)
def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"message": "Internal server error"}, status_code=500)


@app.get("/health")
def health():
    return {"ok": True}

app.include_router(auth.router)
app.include_router(tts.router)
app.include_router(billing.router)
app.include_router(billing.subscription_router)
