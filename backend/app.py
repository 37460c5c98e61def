# FastAPI backend for the cigar concierge
# Handles chat, photo identification, band scans, the preference quiz and the admin inventory panel
# Run from backend/: uvicorn app:app --reload --port 8000
import logging
import os
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from concierge.cache import TTLCache
from concierge.catalog import CatalogError, CatalogNotFound, CatalogStore
from concierge.config import load_settings
from concierge.feedback import FeedbackStore
from concierge.llm import build_generator
from concierge.models import ChatRequest, ChatResponse, FeedbackRequest, QuizRequest, ScanRequest, ScanResponse
from concierge.references import ReferenceImageLoader
from concierge.service import ConciergeService

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# app

APP_VERSION = "1.0.0"
SETTINGS = load_settings()
app = FastAPI(title="Cigar Concierge API", version=APP_VERSION)

# Include evaluation API endpoints
try:
    from evaluation.api_endpoints import router as eval_router
    app.include_router(eval_router, prefix="/api/evaluate", tags=["evaluation"])
except ImportError as e:
    logger.warning("Could not load evaluation endpoints: %s", e)

# CORS setup for the Next.js frontend and kiosk
app.add_middleware(
    CORSMiddleware,
    allow_origins=SETTINGS.allowed_origins + ["http://localhost:8000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    # Wire up the catalog, model providers and stores once; tests may have put their own service in place
    if getattr(app.state, "service", None) is None:
        catalog = CatalogStore(SETTINGS.catalog_path)
        try:
            size = len(catalog.entries())
        except CatalogError as e:
            raise RuntimeError(f"Failed to load catalog: {e}")
        references = ReferenceImageLoader(
            TTLCache(SETTINGS.reference_cache_ttl_seconds),
            count=SETTINGS.reference_image_count,
        )
        app.state.service = ConciergeService(catalog, build_generator(SETTINGS), SETTINGS, references)
        logger.info("Loaded catalog with %d cigars from %s", size, SETTINGS.catalog_path)
    if getattr(app.state, "settings", None) is None:
        app.state.settings = SETTINGS
    if getattr(app.state, "feedback", None) is None:
        app.state.feedback = FeedbackStore(app.state.settings.feedback_path)


def _service(request: Request) -> ConciergeService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Service not ready")
    return service


def _require_admin(request: Request, password: Optional[str]) -> None:
    settings = getattr(request.app.state, "settings", None) or SETTINGS
    if password != settings.admin_password:
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.get("/health")
def health(request: Request):
    service = getattr(request.app.state, "service", None)
    settings = getattr(request.app.state, "settings", None) or SETTINGS
    try:
        size = len(service.catalog.entries()) if service else 0
    except CatalogError:
        size = 0
    has_groq = bool(settings.groq_api_key)
    has_gemini = bool(settings.gemini_api_key)
    return {
        "ok": has_groq or has_gemini,
        "groq": "configured" if has_groq else "missing",
        "gemini": "configured" if has_gemini else "missing",
        "catalog_size": size,
        "version": APP_VERSION,
    }


@app.post("/chat", response_model=ChatResponse)
def chat(req: ChatRequest, request: Request):
    # Text chat, or photo identification when an image is attached
    return _service(request).chat(req)


@app.post("/quiz-recommendations", response_model=ChatResponse)
def quiz_recommendations(req: QuizRequest, request: Request):
    return _service(request).quiz_recommendations(req)


@app.post("/scan", response_model=ScanResponse, response_model_exclude_none=True)
def scan(req: ScanRequest, request: Request):
    return _service(request).scan(req)


@app.get("/meta")
def meta(request: Request):
    try:
        return _service(request).meta()
    except CatalogError as e:
        raise HTTPException(status_code=500, detail=str(e))


# admin inventory

@app.get("/inventory")
def list_inventory(request: Request, x_admin_password: Optional[str] = Header(default=None)):
    _require_admin(request, x_admin_password)
    try:
        return _service(request).catalog.read_raw()
    except CatalogError as e:
        logger.error("Inventory GET error: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch inventory")


@app.post("/inventory")
def add_cigar(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    x_admin_password: Optional[str] = Header(default=None),
):
    _require_admin(request, x_admin_password)
    try:
        cigar = _service(request).catalog.add(payload)
    except CatalogError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "cigar": cigar}


@app.put("/inventory")
def update_cigar(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    x_admin_password: Optional[str] = Header(default=None),
):
    _require_admin(request, x_admin_password)
    cigar_id = payload.get("id")
    if not cigar_id:
        raise HTTPException(status_code=400, detail="Cigar ID is required")
    try:
        cigar = _service(request).catalog.update(str(cigar_id), payload)
    except CatalogNotFound:
        raise HTTPException(status_code=404, detail="Cigar not found")
    except CatalogError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "cigar": cigar}


@app.delete("/inventory")
def delete_cigar(request: Request, id: Optional[str] = None, x_admin_password: Optional[str] = Header(default=None)):
    _require_admin(request, x_admin_password)
    if not id:
        raise HTTPException(status_code=400, detail="Cigar ID is required")
    try:
        deleted = _service(request).catalog.delete(id)
    except CatalogNotFound:
        raise HTTPException(status_code=404, detail="Cigar not found")
    return {"success": True, "deleted": deleted}


# feedback

def _feedback(request: Request) -> FeedbackStore:
    store = getattr(request.app.state, "feedback", None)
    if store is None:
        raise HTTPException(status_code=500, detail="Service not ready")
    return store


@app.post("/feedback")
def post_feedback(req: FeedbackRequest, request: Request, user_agent: Optional[str] = Header(default=None)):
    entry = _feedback(request).add(req, user_agent)
    return {"success": True, "id": entry.id}


@app.get("/feedback")
def get_feedback(
    request: Request,
    rating: Optional[str] = None,
    limit: int = 200,
    x_admin_password: Optional[str] = Header(default=None),
):
    _require_admin(request, x_admin_password)
    entries, total = _feedback(request).list(rating=rating, limit=limit)
    return {"feedback": [e.model_dump(by_alias=True, exclude_none=True) for e in entries], "total": total}
