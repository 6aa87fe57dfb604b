"""BuildFish AI Text-to-3D FastAPI server."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import ValidationError

from buildfish.models import (
    GenerateRequest,
    GenerateResponse,
    GenerationInfo,
    ExportRequest,
    SceneRequest,
    HealthResponse,
)
from buildfish.services import llm_service, scene_service
from buildfish.prompts.examples import EXAMPLE_PROMPTS, short_label
from buildfish import config

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting BuildFish AI (model={config.DEFAULT_MODEL}, "
        f"api_key_set={bool(config.openai_api_key())})"
    )
    yield
    await llm_service.close_http_client()


app = FastAPI(
    title="BuildFish AI Text-to-3D",
    description="Generate 3D models from text descriptions using an LLM and primitive shapes",
    version=config.VERSION,
    lifespan=lifespan,
)

STATIC_DIR = Path(__file__).parent / "static"


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _iso_now() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _default_metadata(prompt: str) -> dict:
    return {
        "title": f"{prompt[:30]}..." if len(prompt) > 30 else prompt,
        "description": f"3D model created from prompt: {prompt}",
        "category": "generated",
        "createdAt": _iso_now(),
    }


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "invalid value") if errors else "invalid value"
    return _error(f"Invalid request: {detail}", 400)


# ── REST Endpoints ──────────────────────────────────────────────


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        version=config.VERSION,
        model=config.DEFAULT_MODEL,
        api_key_configured=bool(config.openai_api_key()),
    )


@app.get("/api/examples")
async def examples():
    return [{"prompt": p, "label": short_label(p)} for p in EXAMPLE_PROMPTS]


@app.post("/api/generate")
async def generate(request: Request):
    total_t0 = time.perf_counter()

    try:
        body = await request.json()
        req = GenerateRequest.model_validate(body)
    except (ValueError, ValidationError) as e:
        logger.error(f"Error parsing request body: {e}")
        return _error("Invalid JSON in request body", 400)

    prompt = req.prompt
    if not prompt:
        return _error("Prompt is required", 400)

    logger.info(f"Request prompt: {prompt[:50] + '...' if len(prompt) > 50 else prompt}")

    api_key = config.openai_api_key()
    if not api_key:
        logger.error("OPENAI_API_KEY is not set in environment variables")
        return _error("OpenAI API key is not configured on the server", 500)

    try:
        result = await llm_service.generate_cad_model(prompt, api_key)
    except llm_service.GenerationError as e:
        logger.error(f"Error in generate API route: {e}")
        return _error(str(e), 500)
    except Exception as e:
        logger.exception("Unexpected error in generate API route")
        return _error(str(e) or "Failed to generate CAD model", 500)

    total_ms = round((time.perf_counter() - total_t0) * 1000, 2)
    logger.info(f"Generated {len(result.objects)} objects in {total_ms} ms")

    response = GenerateResponse(
        objects=result.objects,
        metadata=result.metadata or _default_metadata(prompt),
        rawResponse=result.raw_response,
        generation=GenerationInfo(prompt=prompt, timestamp=_iso_now(), status="success"),
    )
    return JSONResponse(content=response.model_dump())


@app.post("/api/scene")
async def scene(req: SceneRequest):
    meshes = scene_service.build_scene(req.objects)
    return scene_service.scene_stats(meshes)


@app.post("/api/export")
async def export(req: ExportRequest):
    try:
        data = scene_service.export_scene(req.objects, req.format)
    except scene_service.SceneError as e:
        return _error(str(e), 400)

    media_types = {
        "stl": "model/stl",
        "obj": "text/plain",
        "glb": "model/gltf-binary",
    }
    filename = scene_service.export_filename(req.title, req.format)

    return Response(
        content=data,
        media_type=media_types[req.format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/", response_class=HTMLResponse)
async def viewer():
    viewer_path = STATIC_DIR / "viewer.html"
    return HTMLResponse(content=viewer_path.read_text(encoding="utf-8"))


# ── Main ────────────────────────────────────────────────────────


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "buildfish.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=True,
    )
