# main.py

import logging

import uvicorn
from fastapi import FastAPI

from config import DEBUG_MODE, HOST, LOG_DB_PATH, PORT
from logging_config import setup_logging

# Routers
from routers.admin import router as admin_router
from routers.health import router as health_router
from routers.webhook import router as webhook_router

# Initialize logging once
setup_logging(DEBUG_MODE, LOG_DB_PATH)

logger = logging.getLogger(__name__)
logger.info("Starting the deploy relay...")

app = FastAPI(
    title="Deploy Relay",
    description="Webhook-triggered docker compose deployments, one repository at a time",
    version="1.0.0"
)

app.include_router(health_router)
app.include_router(webhook_router)
app.include_router(admin_router)


if __name__ == "__main__":
    logger.info(f"Webhook server listening on {HOST}:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT)
