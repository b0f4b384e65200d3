"""
LabelCheck FastAPI application.

Endpoints:
    GET  /                        Health check
    POST /analyze/compliance      Ingredient compliance report for one label
    POST /admin/invalidate-cache  Drop cached reference data (one dataset or all)
    GET  /admin/cache-stats       Reference cache counts, versions and ages
"""
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Union
import logging
from dotenv import load_dotenv
from pathlib import Path

# Load env vars
load_dotenv(Path(__file__).parent / ".env")

# Initialize App
app = FastAPI(title="LabelCheck Compliance API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Logger
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from labelcheck.config import log_config
from labelcheck.errors import DataUnavailableError, InvalidInputError
from labelcheck.evaluation.compliance_engine import ComplianceEngine
from labelcheck.reference.reference_schema import DatasetKind
from labelcheck.service import build_engine


# --- Startup / shutdown ---
@app.on_event("startup")
def _startup():
    """Build the engine and load every reference dataset before serving."""
    log_config()
    engine = build_engine()
    loaded = engine.cache.warm()
    logger.info("WARMUP reference datasets loaded=%s", {k.value: ok for k, ok in loaded.items()})
    app.state.engine = engine


@app.on_event("shutdown")
def _shutdown():
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        engine.cache.close()


def get_engine(request: Request) -> ComplianceEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Compliance engine not initialized")
    return engine


# --- Request Models ---
class LabelFinding(BaseModel):
    ingredient: Optional[str] = None
    element: Optional[str] = None
    status: str
    rationale: str = ""
    citation: Optional[str] = None
    violation_kind: Optional[str] = None
    voluntary: bool = False


class ComplianceRequest(BaseModel):
    ingredients: Union[List[str], str]
    product_category: str
    allergen_declaration_present: bool = False
    label_findings: List[LabelFinding] = []
    reported_status: Optional[str] = None


class InvalidateRequest(BaseModel):
    dataset: Optional[str] = None


# --- Endpoints ---

@app.get("/")
def health_check():
    return {"status": "ok", "service": "LabelCheck Compliance API"}


@app.post("/analyze/compliance")
def analyze_compliance(request: ComplianceRequest, engine: ComplianceEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Ingredients + category + allergen declaration -> compliance report."""
    logger.info(
        "Compliance request category=%s allergen_declaration=%s",
        request.product_category, request.allergen_declaration_present,
    )
    try:
        report = engine.analyze_compliance(
            ingredients=request.ingredients,
            product_category=request.product_category,
            allergen_declaration_present=request.allergen_declaration_present,
            label_findings=[f.model_dump() for f in request.label_findings],
            reported_status=request.reported_status,
        )
        return report.to_dict()
    except InvalidInputError as e:
        logger.info("Compliance request rejected: %s", e)
        raise HTTPException(status_code=422, detail=e.to_dict())
    except DataUnavailableError as e:
        logger.error("Compliance analysis unavailable: %s", e)
        raise HTTPException(status_code=503, detail=e.to_dict())
    except Exception as e:
        logger.error("Compliance analysis failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/admin/invalidate-cache")
def invalidate_cache(request: InvalidateRequest, engine: ComplianceEngine = Depends(get_engine)):
    """Called after reference data is edited; the next read reloads."""
    if request.dataset:
        try:
            kind = DatasetKind(request.dataset.strip().upper())
        except ValueError:
            raise HTTPException(
                status_code=422,
                detail=f"Unknown dataset {request.dataset!r}; expected one of {[k.value for k in DatasetKind]}",
            )
        engine.cache.invalidate(kind)
        kinds = [kind]
    else:
        engine.cache.invalidate_all()
        kinds = list(DatasetKind)
    logger.info("Cache invalidated datasets=%s", [k.value for k in kinds])
    return {"invalidated": [k.value for k in kinds]}


@app.get("/admin/cache-stats")
def cache_stats(engine: ComplianceEngine = Depends(get_engine)):
    return engine.cache.stats()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
