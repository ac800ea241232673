"""FastAPI application exposing the speculative vs. sequential benchmark."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .config import Settings, get_settings
from .harness import BenchmarkHarness, Comparison
from .interfaces import TokenGenerator
from .mock_model import MockGenerator
from .schemas import CompareRequest, ComparisonEvent, ComparisonReport, ErrorEvent
from .target_model import CompletionsGenerator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Singletons populated during lifespan
_draft: TokenGenerator | None = None
_target: TokenGenerator | None = None


def build_generators(settings: Settings) -> tuple[TokenGenerator, TokenGenerator]:
    """Return (draft, target) generators for the configured backend."""
    if settings.generator == "openai":
        generator = CompletionsGenerator(
            draft_model=settings.draft_model,
            target_model=settings.target_model,
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            temperature=settings.temperature,
        )
    else:
        generator = MockGenerator(
            seed=settings.mock_seed,
            draft_accuracy=settings.mock_draft_accuracy,
            simulate_latency=settings.mock_latency,
        )
    return generator, generator


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _draft, _target
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    logger.info(f"Generator backend: {settings.generator}")
    if settings.generator == "openai":
        logger.info(f"Draft model: {settings.draft_model}, target model: {settings.target_model}")
    _draft, _target = build_generators(settings)

    yield

    _draft = None
    _target = None


app = FastAPI(title="specbench", version="0.1.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _make_harness(events: asyncio.Queue | None = None) -> BenchmarkHarness:
    if _draft is None or _target is None:
        raise RuntimeError("Generators not initialised")
    settings = get_settings()
    return BenchmarkHarness(
        draft=_draft,
        target=_target,
        stop=settings.stop_predicate(),
        retry=settings.retry_policy(),
        events=events,
    )


def _resolve_request(request: CompareRequest) -> dict:
    """Merge request params with config defaults for any unset fields."""
    settings = get_settings()
    return {
        "prompt": request.prompt,
        "target_length": (
            request.target_length if request.target_length is not None else settings.target_length
        ),
        "k": request.k if request.k is not None else settings.speculation_k,
    }


@app.get("/api/health")
async def health():
    settings = get_settings()
    return {
        "status": "ok",
        "generator": settings.generator,
        "k": settings.speculation_k,
        "target_length": settings.target_length,
        "ready": _draft is not None and _target is not None,
    }


@app.post("/api/compare", response_model=ComparisonReport)
async def compare(request: CompareRequest) -> ComparisonReport:
    params = _resolve_request(request)
    try:
        harness = _make_harness()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    comparison = await harness.compare(**params)
    return comparison.summary()


async def _stream_comparison(websocket: WebSocket, params: dict) -> None:
    events: asyncio.Queue = asyncio.Queue()
    harness = _make_harness(events)

    async def run() -> Comparison:
        try:
            return await harness.compare(**params)
        finally:
            await events.put(None)

    task = asyncio.create_task(run())
    try:
        while True:
            event = await events.get()
            if event is None:
                break
            await websocket.send_json(event.model_dump(mode="json"))
        comparison = await task
    except BaseException:
        task.cancel()
        raise

    await websocket.send_json(ComparisonEvent(report=comparison.summary()).model_dump(mode="json"))


@app.websocket("/ws/compare")
async def websocket_compare(websocket: WebSocket):
    await websocket.accept()
    logger.info("WebSocket client connected")

    try:
        while True:
            data = await websocket.receive_json()
            try:
                request = CompareRequest(**data)
            except (ValidationError, TypeError) as e:
                await websocket.send_json(ErrorEvent(message=str(e)).model_dump(mode="json"))
                continue
            params = _resolve_request(request)

            logger.info(
                f"Comparison request: prompt={params['prompt'][:50]}... "
                f"k={params['k']} target_length={params['target_length']}"
            )
            try:
                await _stream_comparison(websocket, params)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.exception(f"Comparison error: {e}")
                await websocket.send_json(ErrorEvent(message=str(e)).model_dump(mode="json"))

    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await websocket.send_json(ErrorEvent(message=str(e)).model_dump(mode="json"))
        except Exception:
            logger.info("Could not report WebSocket error, client already gone")


def run():
    settings = get_settings()
    uvicorn.run(
        "specbench.main:app",
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
