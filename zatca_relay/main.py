from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from zatca_relay.api import create_app
from zatca_relay.config import Settings, load_dotenv
from zatca_relay.logger import configure_logging
from zatca_relay.metrics import MetricsCollector
from zatca_relay.pipeline import SubmissionPipeline
from zatca_relay.signing import build_signer
from zatca_relay.store import build_record_store
from zatca_relay.submission import process_submission
from zatca_relay.webhook import WebhookReconciler
from zatca_relay.zatca_client import ZatcaClient

logger = logging.getLogger(__name__)


def _load_settings() -> Settings:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    if settings.testing_mode:
        logger.warning("ZATCA_TESTING_MODE is enabled; invoices will NOT be sent to ZATCA")
    if not settings.signing_enabled:
        logger.warning("ZATCA_PRIVATE_KEY_FILE not configured; documents are submitted unsigned")
    return settings


def build_pipeline(settings: Settings) -> SubmissionPipeline:
    return SubmissionPipeline(
        ZatcaClient(settings),
        build_signer(settings),
        testing_mode=settings.testing_mode,
    )


def create_app_from_env() -> FastAPI:
    settings = _load_settings()
    return create_app(
        settings,
        pipeline=build_pipeline(settings),
        reconciler=WebhookReconciler(build_record_store(settings)),
    )


def run_submit(invoice_path: str, request_id: str | None = None) -> int:
    settings = _load_settings()
    invoice = json.loads(Path(invoice_path).read_text(encoding="utf-8"))
    status_code, body = process_submission(
        {"invoice": invoice, "request_id": request_id},
        settings,
        pipeline=build_pipeline(settings),
        metrics=MetricsCollector(),
    )
    sys.stdout.write(json.dumps(body, ensure_ascii=False, indent=2) + "\n")
    return 0 if status_code == 200 else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ZATCA Invoice Relay")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP relay")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    submit = subparsers.add_parser("submit", help="Submit one invoice JSON file")
    submit.add_argument("invoice_file")
    submit.add_argument("--request-id", default=None)
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    if args.command == "serve":
        uvicorn.run(
            "zatca_relay.main:create_app_from_env",
            host=args.host,
            port=args.port,
            factory=True,
            reload=False,
        )
        return 0
    if args.command == "submit":
        return run_submit(args.invoice_file, request_id=args.request_id)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
