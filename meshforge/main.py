from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .log import setup_logging
from .routers import session


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(settings.log_level)
    yield
    await session.close_http_client()


app = FastAPI(title="meshforge", version="1.0.0", lifespan=lifespan)
app.include_router(session.router)
