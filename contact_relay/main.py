import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware import Middleware
from fastapi.middleware.cors import CORSMiddleware

from contact_relay.config import settings
from contact_relay.middleware.guards import BodySizeLimitMiddleware, OriginAllowListMiddleware
from contact_relay.routers import contact, mail
from contact_relay.services.mailer import build_sender, log_mail_config

os.makedirs(settings.LOG_DIR, exist_ok=True)
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(os.path.join(settings.LOG_DIR, "contact.log"), encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger("contact_relay")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_mail_config(settings)
    # ConfigError here aborts startup
    app.state.mail_sender = build_sender(settings)
    logger.info("Mail sender ready: %s", app.state.mail_sender.via)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
    middleware=[
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
            allow_credentials=False,
        ),
        Middleware(OriginAllowListMiddleware, allowed_origins=settings.cors_origins),
        Middleware(BodySizeLimitMiddleware, max_bytes=settings.MAX_BODY_BYTES),
    ],
)


@app.get("/health")
def health():
    return {"ok": True}


app.include_router(mail.router)
app.include_router(contact.router, prefix="/api")
