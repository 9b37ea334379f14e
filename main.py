from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from config import settings
from db import create_db_and_tables, seed_categories
from geocoding import build_geocoder
from intake import build_intake_client
from routers import (
    admin,
    ai,
    auth,
    categories,
    donations,
    flags,
    geocode,
    messages,
    notifications,
    ratings,
    reservations,
    users,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    seed_categories()
    app.state.geocoder = build_geocoder()
    app.state.intake = build_intake_client()
    logger.info("MealBridge started")
    yield
    app.state.geocoder.close()
    await app.state.intake.aclose()


app = FastAPI(title="MealBridge", lifespan=lifespan)

app.mount(
    settings.media_url,
    StaticFiles(directory=settings.media_dir, check_dir=False),
    name="media",
)


@app.get("/health")
def health():
    return {"ok": True}


app.include_router(auth.router)
app.include_router(users.router, prefix="/users")
app.include_router(categories.router, prefix="/categories")
app.include_router(donations.router, prefix="/donations")
app.include_router(reservations.router, prefix="/reservations")
app.include_router(messages.router, prefix="/messages")
app.include_router(notifications.router, prefix="/notifications")
app.include_router(ratings.router, prefix="/ratings")
app.include_router(flags.router, prefix="/flags")
app.include_router(admin.router, prefix="/admin")
app.include_router(geocode.router, prefix="/geocode")
app.include_router(ai.router, prefix="/ai")
