"""FastAPI app entrypoint."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from mcplink.api.routes.mcp import router as mcp_router
from mcplink.core.context import MCPContext

LOG_LEVEL_ENV_VAR = "MCPLINK_LOG_LEVEL"


def create_app(context: MCPContext | None = None) -> FastAPI:
    mcp_context = context if context is not None else MCPContext.from_env()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await mcp_context.start()
        try:
            yield
        finally:
            await mcp_context.stop()

    app = FastAPI(title="mcplink API", version="0.1.0", lifespan=lifespan)
    app.state.context = mcp_context
    app.include_router(mcp_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "mcp": mcp_context.manager.state.value}

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("mcplink.api.app:app", host="0.0.0.0", port=8000, reload=False)
