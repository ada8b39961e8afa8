from fastapi import APIRouter, Body, HTTPException
import logging

from kure_gate.config.config import parse_config
from kure_gate.models.models import EvaluateRequest
from kure_gate.services.reporter import to_document
from .deps import RouterDeps

logger = logging.getLogger(__name__)


def create_api_router(deps: RouterDeps) -> APIRouter:
    """Rule listing, ad-hoc evaluation and configuration reload"""
    router = APIRouter(prefix="/api")
    evaluator = deps.evaluator

    @router.get("/rules")
    async def list_rules():
        """List registered rules and whether they are enabled"""
        return evaluator.registry.describe()

    @router.post("/evaluate")
    async def evaluate(request: EvaluateRequest):
        """Evaluate a batch of documents and return the machine-readable report"""
        if request.documents is None and request.manifest is None:
            raise HTTPException(status_code=400, detail="Either 'documents' or 'manifest' is required")

        if request.documents is not None:
            logger.info(f"Evaluating {len(request.documents)} document(s) from API request")
            report = await evaluator.evaluate_documents(request.documents)
        else:
            logger.info("Evaluating manifest text from API request")
            report = await evaluator.evaluate_text(request.manifest, source="request")

        return to_document(report, evaluator.config.fail_on_checker_error)

    @router.post("/config/reload")
    async def reload_config(config: dict = Body(...)):
        """Replace the policy configuration; the previous one stays active on error"""
        new_config = parse_config(config)
        evaluator.reload(new_config)
        return {"status": "reloaded", "rules": len(evaluator.registry)}

    return router
