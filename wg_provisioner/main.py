"""
FastAPI application entrypoint

Registers the peer provisioning router.
"""

import logging
import os

from fastapi import FastAPI

from wg_provisioner.api.v1.endpoints.peers import router as peers_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="WireGuard Peer Provisioner",
        description="Allocates addresses and writes WireGuard configuration for new peers",
        version="1.0.0",
    )
    app.include_router(peers_router, prefix="/api/v1")
    return app


app = create_app()
