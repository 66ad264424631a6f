"""
Minimal backend entry point for the security fine-tuning curator.

Exposes the chat-completion hook and the training triggers over HTTP, plus a
command line for cron-driven trigger and poll runs.

Commands:
    serve                     run the HTTP server
    trigger                   start a fine-tuning job if enough data qualifies
    poll                      poll in-flight jobs, evaluate completed models
    evaluate MODEL_ID         score a model on the held-out sample
    classify CONVERSATION_ID  classify one stored conversation now
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from backend.hooks import ClassificationDispatcher
from backend.store import TrainingStore, create_store
from backend.training import (
    FineTuningJob,
    JobOrchestrator,
    PerformanceEvaluator,
    TriggerResult,
    TriggerScheduler,
)
from curation.classification import SecurityClassifier
from curation.conversation.schema import Conversation
from curation.core.config import Config, config
from curation.core.exceptions import EvaluationError, JobConflictError, ProviderError, StoreError
from curation.core.logging_config import setup_logging
from curation.examples import ExampleFormatter
from tuning.provider import FineTuningProvider, create_provider

load_dotenv()

logger = logging.getLogger("backend")

COMPLETED_PATH = re.compile(r"^/conversations/(?P<conversation_id>[^/]+)/completed$")
JOB_PATH = re.compile(r"^/training/jobs/(?P<job_id>[^/]+)$")


@dataclass
class Services:
    """
    Wired application components sharing one store and one provider.
    """

    store: TrainingStore
    provider: FineTuningProvider
    dispatcher: ClassificationDispatcher
    orchestrator: JobOrchestrator
    evaluator: PerformanceEvaluator
    scheduler: TriggerScheduler

    def close(self) -> None:
        self.dispatcher.shutdown()
        close = getattr(self.provider, "close", None)
        if callable(close):
            close()


def build_services(
    settings: Optional[Config] = None,
    store: Optional[TrainingStore] = None,
    provider: Optional[FineTuningProvider] = None,
) -> Services:
    cfg = settings or config
    store = store or create_store(cfg.database_url)
    provider = provider or create_provider(cfg.provider)

    orchestrator = JobOrchestrator(
        store=store,
        provider=provider,
        formatter=ExampleFormatter(),
        training_config=cfg.training,
        example_config=cfg.examples,
    )
    evaluator = PerformanceEvaluator(store=store, provider=provider, evaluation_config=cfg.evaluation)
    return Services(
        store=store,
        provider=provider,
        dispatcher=ClassificationDispatcher(store, SecurityClassifier(cfg.classifier)),
        orchestrator=orchestrator,
        evaluator=evaluator,
        scheduler=TriggerScheduler(
            store=store,
            orchestrator=orchestrator,
            evaluator=evaluator,
            training_config=cfg.training,
        ),
    )


SERVICES: Optional[Services] = None
_SERVICES_LOCK = threading.Lock()


def _services(settings: Optional[Config] = None) -> Services:
    global SERVICES
    with _SERVICES_LOCK:
        if SERVICES is None:
            SERVICES = build_services(settings)
        return SERVICES


def _job_payload(job: FineTuningJob) -> Dict[str, Any]:
    return job.model_dump(mode="json")


def _trigger_payload(result: TriggerResult) -> Dict[str, Any]:
    return {
        "triggered": result.triggered,
        "qualifying_count": result.qualifying_count,
        "reason": result.reason,
        "job": _job_payload(result.job) if result.job else None,
    }


class BackendHandler(BaseHTTPRequestHandler):
    server_version = "CurationBackend/1.0"

    def _send_json(self, status: int, payload: Dict[str, object]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> Optional[Dict[str, object]]:
        length = int(self.headers.get("Content-Length", "0"))
        if length <= 0:
            return None
        data = self.rfile.read(length)
        try:
            payload = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    def do_GET(self) -> None:
        if self.path == "/health":
            self._send_json(200, {"status": "ok"})
            return

        match = JOB_PATH.match(self.path)
        if match:
            job = _services().store.get_job(match.group("job_id"))
            if job is None:
                self._send_json(404, {"detail": "Job not found"})
                return
            self._send_json(200, _job_payload(job))
            return

        self._send_json(404, {"detail": "Not found"})

    def do_POST(self) -> None:
        try:
            self._route_post()
        except StoreError as exc:
            logger.exception("Store failure handling %s: %s", self.path, exc)
            self._send_json(503, {"detail": "Store unavailable"})
        except Exception as exc:  # pragma: no cover - runtime guard
            logger.exception("Unhandled error for %s: %s", self.path, exc)
            self._send_json(500, {"detail": "Internal error"})

    def _route_post(self) -> None:
        if self.path == "/conversations":
            self._handle_save_conversation()
            return

        match = COMPLETED_PATH.match(self.path)
        if match:
            conversation_id = match.group("conversation_id")
            _services().dispatcher.on_conversation_completed(conversation_id)
            self._send_json(202, {"conversation_id": conversation_id, "status": "queued"})
            return

        if self.path == "/training/trigger":
            result = _services().scheduler.check_and_trigger()
            self._send_json(200, _trigger_payload(result))
            return

        if self.path == "/training/poll":
            jobs = _services().scheduler.poll_active_jobs()
            self._send_json(200, {"jobs": [_job_payload(job) for job in jobs]})
            return

        self._send_json(404, {"detail": "Not found"})

    def _handle_save_conversation(self) -> None:
        payload = self._read_json()
        if payload is None:
            self._send_json(400, {"detail": "Expected a JSON object"})
            return
        try:
            conversation = Conversation(**payload)
        except (TypeError, ValidationError) as exc:
            self._send_json(400, {"detail": f"Invalid conversation: {exc}"})
            return
        _services().store.save_conversation(conversation)
        self._send_json(201, {"conversation_id": conversation.conversation_id})

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("%s - %s", self.address_string(), format % args)


def run(host: str, port: int) -> None:
    logger.info("Starting backend server on %s:%s", host, port)
    server = ThreadingHTTPServer((host, port), BackendHandler)
    try:
        server.serve_forever()
    finally:
        server.server_close()
        if SERVICES is not None:
            SERVICES.close()


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Security fine-tuning curator backend")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    commands.add_parser("trigger", help="Start a fine-tuning job if enough data qualifies")
    commands.add_parser("poll", help="Poll in-flight jobs and evaluate completed models")

    evaluate = commands.add_parser("evaluate", help="Evaluate a fine-tuned model")
    evaluate.add_argument("model_id")
    evaluate.add_argument("--job-id", default=None, help="Job that produced the model")

    classify = commands.add_parser("classify", help="Classify one stored conversation")
    classify.add_argument("conversation_id")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = config
    if args.log_level:
        settings = config.model_copy(update={"log_level": args.log_level})
    setup_logging(settings)

    command = args.command or "serve"
    if command == "serve":
        _services(settings)
        run(getattr(args, "host", "0.0.0.0"), getattr(args, "port", 8000))
        return 0

    services = _services(settings)
    try:
        if command == "trigger":
            _print(_trigger_payload(services.scheduler.check_and_trigger()))
        elif command == "poll":
            _print({"jobs": [_job_payload(job) for job in services.scheduler.poll_active_jobs()]})
        elif command == "evaluate":
            record = services.evaluator.evaluate(args.model_id, job_id=args.job_id)
            _print({"record": record.model_dump(mode="json") if record else None})
        elif command == "classify":
            record = services.dispatcher.classify_now(args.conversation_id)
            if record is None:
                logger.error("Conversation %s not found", args.conversation_id)
                return 1
            _print(record.model_dump(mode="json"))
    except (EvaluationError, JobConflictError, ProviderError, StoreError) as exc:
        logger.error("%s failed: %s", command, exc)
        return 1
    finally:
        services.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
