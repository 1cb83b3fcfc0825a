#!/usr/bin/env python3
import json
import logging
import os
from typing import Literal, Optional

import anyio
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config.settings import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS
from engine.core import load_config_from_env, validate_config
from engine.json_utils import json_sanity_check, safe_json
from engine.models import Hit, InvalidPayloadError, MusicQuery
from engine.paths import build_pipeline_paths, ensure_dir
from engine.pipeline import PipelineContext
from engine.resolver import ResolverTransportError
from engine.runtime import get_runtime_info

APP_NAME = "songsift API"


def _setup_logging(log_dir):
    ensure_dir(log_dir)
    root = logging.getLogger("")
    log_path = os.path.join(log_dir, "songsift.log")
    root.setLevel(logging.INFO)
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            if os.path.abspath(getattr(handler, "baseFilename", "")) == os.path.abspath(log_path):
                return
    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    file_handler.setLevel(logging.INFO)
    root.addHandler(file_handler)


class SearchRequestPayload(BaseModel):
    artist: Optional[str] = None
    album: Optional[str] = None
    track: Optional[str] = None
    year: Optional[int] = None
    strict: Optional[bool] = None
    preferredFormats: Optional[list[str]] = None
    minBitrateKbps: Optional[float] = None
    limit: Optional[int] = None


class ResolveRequestPayload(BaseModel):
    hit: dict


class IngestRequestPayload(BaseModel):
    hit: dict
    transcode: Optional[Literal["copy", "aac320", "mp3V0"]] = None


class SafeJSONResponse(JSONResponse):
    def render(self, content):
        return json.dumps(
            safe_json(content),
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        ).encode("utf-8")


def _cors_origins(raw):
    return [origin.strip() for origin in (raw or "").split(",") if origin.strip()]


app = FastAPI(
    title=APP_NAME,
    description="Search open music sources, resolve direct media URLs and ingest into a library.",
    default_response_class=SafeJSONResponse,
)
_CORS_ORIGINS = _cors_origins(os.environ.get("SONGSIFT_CORS_ORIGINS"))
app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_origin_regex=None if _CORS_ORIGINS else ".*",
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
)


@app.on_event("startup")
async def startup():
    config = load_config_from_env()
    errors = validate_config(config)
    if errors:
        logging.error("Invalid config: %s", "; ".join(errors))
        raise RuntimeError("invalid config")
    paths = build_pipeline_paths()
    _setup_logging(paths.log_dir)
    json_sanity_check()
    app.state.pipeline = PipelineContext(paths, config=config)
    app.state.pipeline.start()
    logging.info(
        "songsift started library=%s staging=%s adapters=%s",
        paths.library_root,
        paths.staging_root,
        ",".join(app.state.pipeline.adapters),
    )


@app.on_event("shutdown")
async def shutdown():
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is not None:
        pipeline.shutdown()


def _pipeline() -> PipelineContext:
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=503, detail="pipeline not started")
    return pipeline


@app.get("/")
async def root():
    return {"ok": True}


@app.get("/api/version")
async def version():
    return get_runtime_info()


@app.post("/api/search")
async def search(payload: SearchRequestPayload):
    pipeline = _pipeline()
    try:
        query = MusicQuery.from_dict(payload.model_dump(exclude_none=True))
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    ranked = await anyio.to_thread.run_sync(pipeline.search, query)
    return {"results": [item.hit.to_dict() for item in ranked]}


@app.post("/api/resolve")
async def resolve_hit(payload: ResolveRequestPayload):
    pipeline = _pipeline()
    try:
        hit = Hit.from_dict(payload.hit)
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        resolved = await anyio.to_thread.run_sync(pipeline.resolve, hit)
    except ResolverTransportError as exc:
        logging.warning("resolve transport failure source=%s err=%s", hit.source, exc)
        raise HTTPException(status_code=502, detail="Origin unavailable; try again later.") from exc
    if resolved is None:
        raise HTTPException(status_code=404, detail="Unable to resolve direct URL for this hit.")
    return resolved.to_dict()


@app.post("/api/ingest")
async def ingest(payload: IngestRequestPayload):
    pipeline = _pipeline()
    try:
        job_id = await anyio.to_thread.run_sync(pipeline.ingest, payload.hit, payload.transcode)
    except InvalidPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"jobId": job_id}


@app.get("/api/jobs/{job_id}")
async def get_job(job_id: str):
    pipeline = _pipeline()
    job = await anyio.to_thread.run_sync(pipeline.get_job, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    return job.to_dict()


if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("SONGSIFT_HOST") or "127.0.0.1"
    port = int(os.environ.get("SONGSIFT_PORT") or "8080")
    uvicorn.run("api.main:app", host=host, port=port, reload=False)
