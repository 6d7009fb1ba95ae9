from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    """Readiness probe: the rule index must be loaded."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.rule_index.is_loaded:
        return {"status": "starting", "rules_loaded": 0, "cache_available": False}
    return {
        "status": "ok",
        "rules_loaded": engine.rule_index.snapshot.rules_loaded,
        "cache_available": engine.cache.is_available,
    }
