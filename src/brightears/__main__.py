"""Run the service with ``python -m brightears``."""

import os

import uvicorn

from .api.app import app, logger

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    logger.info(f"Starting Bright Ears realtime service on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port)
