import hashlib
import json
import time

import pytest
from fastapi.testclient import TestClient

from conftest import mention_body
from kb_bot.errors import EnqueueUnavailable, MalformedEvent, SignatureRejected
from kb_bot.ingress import IngressHandler, create_app
from kb_bot.queue.models import EnqueueResult
from kb_bot.signature import SlackSignatureVerifier


class RecordingQueue:
    def __init__(self, result=EnqueueResult.ACCEPTED, error=None):
        self.calls = []
        self.result = result
        self.error = error

    def enqueue(self, body, ordering_key, dedup_token):
        self.calls.append((body, ordering_key, dedup_token))
        if self.error:
            raise self.error
        return self.result

    def size(self):
        return len(self.calls)


def signed_headers(verifier, body):
    ts = int(time.time())
    return {
        "X-Slack-Request-Timestamp": str(ts),
        "X-Slack-Signature": verifier.sign(ts, body),
        "Content-Type": "application/json",
    }


def test_mention_is_enqueued_once_with_channel_and_event_id():
    queue = RecordingQueue()
    body = mention_body(channel="C42", event_id="Ev42")

    assert IngressHandler(queue).handle(body, {}) == {}
    assert queue.calls == [(body, "C42", "Ev42")]


def test_deduplicated_enqueue_is_still_acknowledged():
    queue = RecordingQueue(result=EnqueueResult.DEDUPLICATED)
    assert IngressHandler(queue).handle(mention_body(), {}) == {}
    assert len(queue.calls) == 1


def test_missing_channel_is_malformed_and_not_enqueued():
    queue = RecordingQueue()
    payload = json.loads(mention_body())
    del payload["event"]["channel"]

    with pytest.raises(MalformedEvent):
        IngressHandler(queue).handle(json.dumps(payload).encode(), {})
    assert queue.calls == []


def test_missing_event_id_uses_body_hash():
    queue = RecordingQueue()
    payload = json.loads(mention_body())
    del payload["event_id"]
    body = json.dumps(payload).encode()

    IngressHandler(queue).handle(body, {})
    assert queue.calls[0][2] == hashlib.sha256(body).hexdigest()


def test_non_json_body_is_malformed():
    with pytest.raises(MalformedEvent):
        IngressHandler(RecordingQueue()).handle(b"not json", {})


def test_url_verification_returns_challenge_without_enqueue():
    queue = RecordingQueue()
    body = json.dumps({"type": "url_verification", "challenge": "abc", "token": "t"}).encode()

    assert IngressHandler(queue).handle(body, {}) == {"challenge": "abc"}
    assert queue.calls == []


def test_other_events_are_acknowledged_and_ignored():
    queue = RecordingQueue()
    payload = json.loads(mention_body())
    payload["event"]["type"] = "message"

    assert IngressHandler(queue).handle(json.dumps(payload).encode(), {}) == {}
    assert queue.calls == []


def test_rejected_signature_never_enqueues():
    queue = RecordingQueue()
    handler = IngressHandler(queue, verifier=lambda headers, body: False)

    with pytest.raises(SignatureRejected):
        handler.handle(mention_body(), {})
    assert queue.calls == []


def test_http_mention_is_acknowledged():
    queue = RecordingQueue()
    verifier = SlackSignatureVerifier("secret")
    body = mention_body()

    with TestClient(create_app(IngressHandler(queue, verifier))) as client:
        response = client.post("/", content=body, headers=signed_headers(verifier, body))

    assert response.status_code == 200
    assert response.json() == {}
    assert len(queue.calls) == 1


def test_http_malformed_event_is_rejected_synchronously():
    queue = RecordingQueue()
    payload = json.loads(mention_body())
    del payload["event"]["channel"]

    with TestClient(create_app(IngressHandler(queue))) as client:
        response = client.post("/", content=json.dumps(payload).encode())

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert queue.calls == []


def test_http_bad_signature_is_unauthorized():
    queue = RecordingQueue()
    verifier = SlackSignatureVerifier("secret")
    body = mention_body()
    headers = signed_headers(SlackSignatureVerifier("other-secret"), body)

    with TestClient(create_app(IngressHandler(queue, verifier))) as client:
        response = client.post("/", content=body, headers=headers)

    assert response.status_code == 401
    assert queue.calls == []


def test_http_queue_unavailable_is_retryable():
    queue = RecordingQueue(error=EnqueueUnavailable("disk full"))

    with TestClient(create_app(IngressHandler(queue))) as client:
        response = client.post("/", content=mention_body())

    assert response.status_code == 503
    assert len(queue.calls) == 1


def test_http_end_to_end_with_spool(spool):
    with TestClient(create_app(IngressHandler(spool))) as client:
        first = client.post("/", content=mention_body(event_id="Ev9"))
        retry = client.post("/", content=mention_body(event_id="Ev9"))
        health = client.get("/health")

    assert first.status_code == retry.status_code == 200
    assert health.json() == {"status": "ok", "queued": 1}
