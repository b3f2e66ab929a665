"""Webhook ingress: acknowledge Slack events and queue them for the workers."""
import json
from typing import Any, Callable, Dict, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from kb_bot import events
from kb_bot.errors import EnqueueUnavailable, MalformedEvent, SignatureRejected
from kb_bot.logging_conf import logger
from kb_bot.queue.spool_queue import SpoolQueue

Verifier = Callable[[Mapping[str, str], bytes], bool]


class IngressHandler:
    """Validates one inbound event and enqueues it. Never waits for processing."""

    def __init__(self, queue: SpoolQueue, verifier: Optional[Verifier] = None):
        self.queue = queue
        self.verifier = verifier

    def handle(self, body: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """
        Process one webhook request.

        Returns:
            The JSON body to acknowledge with.

        Raises:
            SignatureRejected: the authenticity check failed
            MalformedEvent: no ordering key or dedup token can be derived
            EnqueueUnavailable: the queue could not take the message
        """
        if self.verifier is not None and not self.verifier(headers, body):
            raise SignatureRejected("Error verifying request.")

        try:
            payload = json.loads(body)
        except ValueError as e:
            raise MalformedEvent(f"Body is not JSON: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedEvent("Body is not a JSON object")

        event_type = payload.get("type")
        if event_type == events.URL_VERIFICATION_TYPE:
            challenge = payload.get("challenge")
            if not challenge:
                raise MalformedEvent("url_verification without challenge")
            return {"challenge": challenge}

        if event_type != events.EVENT_CALLBACK_TYPE:
            logger.info(f"Ignoring request of type {event_type!r}")
            return {}

        event = payload.get("event")
        if isinstance(event, dict) and event.get("type") != events.APP_MENTION_EVENT_TYPE:
            logger.info(f"Ignoring event of type {event.get('type')!r}")
            return {}

        callback = events.parse_event_callback(payload)
        key = events.ordering_key(callback)
        token = events.dedup_token(callback, body)

        result = self.queue.enqueue(body, key, token)
        logger.info(
            f"Event {token} for {key}: {result.value}",
            extra={"ordering_key": key, "dedup_token": token},
        )
        return {}


def create_app(handler: IngressHandler) -> FastAPI:
    """Build the HTTP app exposing the ingress handler."""
    app = FastAPI(title="kb-bot ingress")

    @app.post("/")
    async def webhook_received(request: Request):
        body = await request.body()
        try:
            response = await run_in_threadpool(handler.handle, body, request.headers)
        except SignatureRejected as e:
            logger.warning(f"Rejected request: {e}")
            return _error_response(401, str(e))
        except MalformedEvent as e:
            logger.warning(f"Malformed event: {e}")
            return _error_response(400, str(e))
        except EnqueueUnavailable as e:
            logger.error(f"Queue unavailable: {e}")
            return _error_response(503, str(e))
        return JSONResponse(response)

    @app.get("/health")
    def health():
        return {"status": "ok", "queued": handler.queue.size()}

    return app


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)
