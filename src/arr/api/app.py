"""FastAPI application factory for the ARR agent API.

``create_app`` wires one registry, backend, session store and approval
table per application instance; tests pass their own to get isolated apps.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from core import metrics
from core.agent import ApprovalTable, Orchestrator, SessionStore
from core.config import AggregatedConfig, get_config
from core.llm import BackendAdapter, create_backend
from core.logs import get_logger, setup_logging
from core.modules import ModuleRegistry
from arr.api.routes.agent import router as agent_router

logger = get_logger("api")


def create_app(
    config: AggregatedConfig | None = None,
    registry: ModuleRegistry | None = None,
    backend: BackendAdapter | None = None,
    sessions: SessionStore | None = None,
    approvals: ApprovalTable | None = None,
) -> FastAPI:
    cfg = config or get_config()
    setup_logging(cfg.logging)

    registry = registry or ModuleRegistry(
        cfg.modules.path, cfg.modules.extensions
    )
    backend = backend or create_backend(cfg.llm)
    sessions = sessions or SessionStore(
        max_messages=cfg.session.max_messages, ttl_s=cfg.session.ttl_s
    )
    approvals = approvals or ApprovalTable(ttl_s=cfg.agent.approval_ttl_s)
    orchestrator = Orchestrator(
        registry=registry,
        backend=backend,
        sessions=sessions,
        approvals=approvals,
        config=cfg.agent,
        system_prompt=cfg.llm.system_prompt,
        default_session_id=cfg.session.default_id,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # Unreadable module directory is fatal (ModuleDirectoryError)
        ids = registry.list()
        logger.info(
            "modules directory %s: %d module(s) %s",
            registry.path,
            len(ids),
            ids,
        )
        for module_id, err in registry.load_all().items():
            logger.warning("module %s unavailable: %s", module_id, err)
        yield

    app = FastAPI(
        title="ARR API",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.registry = registry
    app.state.backend = backend
    app.state.sessions = sessions
    app.state.approvals = approvals
    app.state.orchestrator = orchestrator
    app.state.default_session_id = cfg.session.default_id

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = ".".join(
            str(part) for part in first.get("loc", ()) if part != "body"
        )
        detail = first.get("msg", "invalid value")
        logger.warning(
            "invalid request body %s %s: %s", request.url.path, loc, detail
        )
        message = f"Invalid request: {loc}: {detail}" if loc else (
            f"Invalid request: {detail}"
        )
        return JSONResponse(
            status_code=422, content={"success": False, "message": message}
        )

    @app.get("/health")
    def health():  # noqa: D401
        return {"status": "ok"}

    if cfg.metrics.expose:

        @app.get("/metrics")
        def metrics_snapshot():  # noqa: D401
            return metrics.snapshot()

    app.include_router(agent_router)

    # Built web client, if present
    frontend = Path(cfg.server.frontend_dir)
    if frontend.is_dir():
        app.mount(
            "/ui", StaticFiles(directory=frontend, html=True), name="ui"
        )

    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):  # noqa: D401
        start = time.time()
        labels = {"route": request.url.path, "method": request.method}
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration_ms = (time.time() - start) * 1000.0
            metrics.inc("api_request_total", labels)
            metrics.observe("api_request_latency_ms", duration_ms, labels)
            if status >= 400:
                metrics.inc(
                    "api_request_errors_total", labels | {"status": status}
                )

    return app


app = create_app()


def main() -> None:  # pragma: no cover
    import uvicorn

    cfg = get_config()
    uvicorn.run(
        "arr.api.app:app",
        host=cfg.server.host,
        port=cfg.server.port,
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
