import logging
import os

from fastapi import FastAPI
from api.routes import router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Home Win Alerts API")

app.include_router(router)
