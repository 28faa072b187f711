from __future__ import annotations

import json
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from zatca_relay.config import Settings
from zatca_relay.metrics import MetricsCollector
from zatca_relay.pipeline import SubmissionPipeline
from zatca_relay.submission import process_submission
from zatca_relay.webhook import SIGNATURE_HEADER, WebhookReconciler, process_webhook

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

SUBMISSION_PATH = "/zatca-invoice-processor"
WEBHOOK_PATH = "/zatca-webhook"


def _json(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


def create_app(
    settings: Settings,
    *,
    pipeline: SubmissionPipeline,
    reconciler: WebhookReconciler,
    metrics: MetricsCollector | None = None,
) -> FastAPI:
    app = FastAPI(title="ZATCA Invoice Relay", version="0.1.0")
    collector = metrics or MetricsCollector()

    @app.options(SUBMISSION_PATH)
    @app.options(WEBHOOK_PATH)
    def preflight() -> PlainTextResponse:
        return PlainTextResponse("ok", headers=CORS_HEADERS)

    @app.post(SUBMISSION_PATH)
    async def submit_invoice(request: Request) -> JSONResponse:
        raw = await request.body()
        try:
            body: Any = json.loads(raw) if raw else None
        except (UnicodeDecodeError, json.JSONDecodeError):
            body = None
        status_code, payload = await run_in_threadpool(
            process_submission, body, settings, pipeline=pipeline, metrics=collector
        )
        return _json(status_code, payload)

    @app.post(WEBHOOK_PATH)
    async def zatca_webhook(request: Request) -> JSONResponse:
        raw = await request.body()
        status_code, payload = await run_in_threadpool(
            process_webhook,
            raw,
            request.headers.get(SIGNATURE_HEADER),
            settings,
            reconciler=reconciler,
            metrics=collector,
        )
        return _json(status_code, payload)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "testing_mode": settings.testing_mode}

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        return collector.snapshot()

    return app
