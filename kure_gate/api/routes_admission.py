from fastapi import APIRouter, HTTPException
import copy
import logging

from kure_gate.models.models import AdmissionReview, Severity
from .deps import RouterDeps

logger = logging.getLogger(__name__)

# Kubernetes caps admission warnings; keep the response well below the limit
MAX_WARNINGS = 20


def create_admission_router(deps: RouterDeps) -> APIRouter:
    """Validating admission webhook (admission.k8s.io/v1 AdmissionReview)"""
    router = APIRouter(prefix="/api")
    evaluator = deps.evaluator

    @router.post("/admission")
    async def review(admission: AdmissionReview):
        request = admission.request
        if request is None:
            raise HTTPException(status_code=400, detail="AdmissionReview has no request")

        response = {"uid": request.uid, "allowed": True}

        if request.object is None:
            # DELETE and CONNECT carry no object to evaluate
            logger.debug(f"Admission {request.uid} ({request.operation}): no object, allowing")
            return _wrap(admission, response)

        document = copy.deepcopy(request.object)
        metadata = document.setdefault("metadata", {})
        if isinstance(metadata, dict) and request.namespace and not metadata.get("namespace"):
            metadata["namespace"] = request.namespace

        report = await evaluator.evaluate_documents([document], [f"admission:{request.uid}"])
        result = report.results[0]

        if result.parse_error:
            logger.warning(f"Admission {request.uid}: rejecting unparseable object: {result.parse_error}")
            response["allowed"] = False
            response["status"] = {"code": 400, "message": f"kure-gate could not parse object: {result.parse_error}"}
            return _wrap(admission, response)

        verdict = result.verdict
        errors = [v for v in verdict.violations if v.severity == Severity.ERROR]
        warnings = [v for v in verdict.violations if v.severity == Severity.WARNING]

        if errors:
            response["allowed"] = False
            response["status"] = {
                "code": 403,
                "message": "; ".join(f"[{v.rule_id}] {v.message}" for v in errors),
            }
        if warnings:
            response["warnings"] = [f"[{v.rule_id}] {v.message}" for v in warnings[:MAX_WARNINGS]]

        logger.info(f"Admission {request.uid} for {verdict.manifest_identity}: "
                    f"{'allowed' if response['allowed'] else 'denied'} "
                    f"({len(errors)} errors, {len(warnings)} warnings)")
        return _wrap(admission, response)

    return router


def _wrap(admission: AdmissionReview, response: dict) -> dict:
    return {
        "apiVersion": admission.apiVersion,
        "kind": "AdmissionReview",
        "response": response,
    }
