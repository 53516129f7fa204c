from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatdesk.config import get_settings
from chatdesk.database import init_db
from chatdesk.exceptions import ChatdeskError
from chatdesk.logging_config import get_logger, setup_logging
from chatdesk.routers import chats, webhook

settings = get_settings()
setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Chatdesk API",
    description="WhatsApp support-menu bot with agent handover",
    version="0.1.0",
    debug=settings.debug,
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(chats.router)


@app.exception_handler(ChatdeskError)
async def chatdesk_error_handler(request: Request, exc: ChatdeskError):
    logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.code, "message": exc.message},
    )


@app.on_event("startup")
def create_tables() -> None:
    if settings.auto_create_tables:
        init_db()
        logger.info("Database tables ensured")


@app.get("/health")
async def health():
    return {"status": "ok"}
