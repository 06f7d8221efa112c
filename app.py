from fastapi import FastAPI, BackgroundTasks, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from typing import Optional
import os
import shutil
import logging

from ai_client import PROVIDERS
from config import get_settings
from details_extractor import extract_website_details
from generator import EmptyProjectData, ProjectNotFound, SiteGenerator
from intent_analyzer import analyze_intent
from job_store import JobStore
from models import WebsiteDetails

# Initialize logging early so directory setup is visible
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("site-generator-api")

settings = get_settings()
settings.ensure_output_dir()

store = JobStore(max_logs=settings.max_log_entries, max_jobs=settings.max_jobs)
generator = SiteGenerator(settings, store)

app = FastAPI(title="AI Website Generator")

# the browser frontend is served from a different origin
LOCAL_ORIGINS = ["http://localhost:3000", "http://localhost:5500", "http://127.0.0.1:5500"]
allowed_origins = LOCAL_ORIGINS + ([settings.frontend_url.rstrip("/")] if settings.frontend_url else [])
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info("CORS origins: %s", ", ".join(allowed_origins))


class IntentRequest(BaseModel):
    intent: str = ""
    provider: Optional[str] = None


class GenerateWebsiteRequest(IntentRequest):
    websiteDetails: Optional[WebsiteDetails] = None


class GeneratePageRequest(IntentRequest):
    projectId: str = ""
    context: Optional[str] = None
    location: Optional[str] = None


def _provider(name: Optional[str]) -> str:
    provider = (name or settings.default_provider).strip().lower()
    if provider not in PROVIDERS:
        raise HTTPException(status_code=400, detail=f"Unknown provider '{provider}'. Use one of: {', '.join(PROVIDERS)}")
    return provider


def _intent(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="Intent is required")
    return text


@app.post("/api/analyze-intent")
def api_analyze_intent(req: IntentRequest):
    intent = _intent(req.intent)
    analysis = analyze_intent(intent, provider=_provider(req.provider))
    return analysis.to_wire()


@app.post("/api/extract-website-details")
def api_extract_details(req: IntentRequest):
    intent = _intent(req.intent)
    details = extract_website_details(intent, provider=_provider(req.provider))
    return details.model_dump(by_alias=True)


@app.post("/api/generate-website")
def api_generate_website(req: GenerateWebsiteRequest, background_tasks: BackgroundTasks):
    intent = _intent(req.intent)
    provider = _provider(req.provider)
    details = req.websiteDetails if req.websiteDetails and not req.websiteDetails.is_empty() else None

    job = generator.start()
    logger.info("Queued %s (provider=%s)", job.project_id, provider)
    background_tasks.add_task(generator.run, job.project_id, intent, provider, details)
    return {
        "projectId": job.project_id,
        "status": job.status.value,
        "message": "Website generation started. Poll /api/status/{projectId} for progress.",
    }


@app.get("/api/status/{project_id}")
def api_status(project_id: str):
    job = store.get(project_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return job.to_wire()


@app.get("/api/logs/{project_id}")
def api_logs(project_id: str):
    return {"projectId": project_id, "logs": [entry.model_dump() for entry in store.logs(project_id)]}


@app.post("/api/generate-page")
def api_generate_page(req: GeneratePageRequest):
    if not req.projectId:
        raise HTTPException(status_code=400, detail="projectId is required")
    intent = _intent(req.intent)
    provider = _provider(req.provider)
    try:
        return generator.generate_page(req.projectId, intent, context=req.context,
                                       location=req.location, provider=provider)
    except ProjectNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EmptyProjectData as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Page generation failed for %s", req.projectId)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Page generation failed"})


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/debug")
def debug_info():
    """Runtime diagnostics for credentials and tooling.

    Only presence flags are reported, never the secret values themselves.
    """
    return {
        "cwd": os.getcwd(),
        "data_root": settings.data_root,
        "generated_sites_dir": settings.generated_sites_dir,
        "public_base_path": settings.public_base_path,
        "OPENROUTER_API_KEY_set": bool(settings.openrouter_api_key),
        "ANTHROPIC_API_KEY_set": bool(settings.anthropic_api_key),
        "VERCEL_TOKEN_set": bool(settings.vercel_token),
        "default_provider": settings.default_provider,
        "npx_available": shutil.which("npx") is not None,
        "jobs": len(store),
    }


# mounted last so the API routes above take precedence
app.mount(settings.public_base_path, StaticFiles(directory=settings.generated_sites_dir, html=True, check_dir=False),
          name="generated-sites")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
