"""
Server entrypoint — runs the FastAPI app under uvicorn.

Usage:
    python server.py
"""

from __future__ import annotations

import logging

import uvicorn

import config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)


def main():
    log.info("Starting Visual Feedback server on %s:%d", config.HOST, config.PORT)
    if config.ACCESS_TOKEN_GENERATED:
        log.info("Connection token: %s", config.ACCESS_TOKEN)
        log.info("Enter this token in the Visual Feedback extension to connect (set VF_TOKEN to pin it)")
    elif not config.ACCESS_TOKEN:
        log.warning("VF_TOKEN is empty; accepting every WebSocket connection")
    uvicorn.run("app:app", host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
