import logging

import socketio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Depends, FastAPI

from app.api.dependencies import security
from app.api.middleware import authenticate_request, init_firebase
from app.api.realtime import sio
from app.api.routes import (
    admin_router,
    auth_router,
    conversations_router,
    listings_router,
    profile_router,
    reviews_router,
    transactions_router,
)
from app.core.config import config
from app.core.logging_config import configure_logging
from app.models import tables  # noqa: F401
from app.schedulers.expire_unpaid_transactions import expire_unpaid_transactions

logger = logging.getLogger(__name__)


async def lifespan(app: FastAPI):
    # Perform startup tasks
    configure_logging()
    init_firebase()
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        expire_unpaid_transactions,
        "interval",
        minutes=config.expire_unpaid_job_interval_minutes,
    )

    scheduler.start()
    app.state.scheduler = scheduler  # Store the scheduler in app state for access
    logger.info("%s started", config.app_name)
    yield

    # Cleanup
    scheduler.shutdown()


app = FastAPI(title=config.app_name, lifespan=lifespan)

for router in (
    auth_router,
    profile_router,
    listings_router,
    reviews_router,
    conversations_router,
    transactions_router,
    admin_router,
):
    app.include_router(router, dependencies=[Depends(security)])


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok"}


app.middleware("http")(authenticate_request)

# HTTP requests are served by FastAPI, /socket.io by the realtime server
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
