from __future__ import annotations

import argparse
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scriptgraph.app.api import scripts
from scriptgraph.app.core.config import Settings, get_settings
from scriptgraph.app.core.container import AppContainer
from scriptgraph.app.core.logging import configure_logging
from scriptgraph.app.services.script_service import ScriptService


def _build_container(settings: Settings) -> AppContainer:
    return AppContainer(settings=settings, script_service=ScriptService(settings))


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.debug)

    app.state.container = _build_container(settings)
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(scripts.router, prefix=settings.api_prefix)

    @app.get("/api/health")
    async def health() -> dict[str, str | int]:
        return {
            "status": "ok",
            "version": settings.app_version,
            "indent_size": settings.indent_size,
        }

    return app


app = create_app()


def run() -> None:
    parser = argparse.ArgumentParser(description="Run the ScriptGraph API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", default="info")
    parser.add_argument("--reload", action=argparse.BooleanOptionalAction, default=False)
    parser.add_argument("--access-log", action=argparse.BooleanOptionalAction, default=True)
    parser.add_argument("--debug", action=argparse.BooleanOptionalAction, default=None)
    args = parser.parse_args()

    if args.debug is True:
        os.environ["SCRIPTGRAPH_DEBUG"] = "1"
    elif args.debug is False:
        os.environ["SCRIPTGRAPH_DEBUG"] = "0"

    get_settings.cache_clear()
    globals()["app"] = create_app()

    uvicorn.run(
        "scriptgraph.app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        access_log=args.access_log,
    )


if __name__ == "__main__":
    run()
