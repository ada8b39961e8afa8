from fastapi import FastAPI, Response
from contextlib import asynccontextmanager
from typing import Optional
import logging

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kure_gate.config.config import PolicyConfig
from kure_gate.services.checkers import ExternalCheckers
from kure_gate.services.evaluator import PolicyEvaluator
from kure_gate.api.deps import RouterDeps
from kure_gate.api.routes import create_api_router
from kure_gate.api.routes_admission import create_admission_router
from kure_gate.api.middleware import configure_exception_handlers

logger = logging.getLogger(__name__)


def create_app(config: Optional[PolicyConfig] = None,
               checkers: Optional[ExternalCheckers] = None) -> FastAPI:
    """Create and configure the FastAPI application"""

    # Built before serving so configuration errors fail fast
    evaluator = PolicyEvaluator(config, checkers)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Policy evaluator ready with {len(evaluator.registry)} rules")
        yield
        evaluator.close()

    app = FastAPI(title="Kure Gate", version="1.0.0", lifespan=lifespan)
    app.state.evaluator = evaluator

    configure_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    @app.get("/metrics")
    async def metrics():
        """Prometheus exposition"""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    deps = RouterDeps(evaluator=evaluator)
    app.include_router(create_api_router(deps))
    app.include_router(create_admission_router(deps))

    return app
