"""Slack request signature verification."""
import hashlib
import hmac
import time
from typing import Callable, Mapping

from kb_bot.logging_conf import logger

TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"
VERSION = "v0"


class SlackSignatureVerifier:
    """
    Checks the ``X-Slack-Signature`` header of an inbound request.

    See https://api.slack.com/authentication/verifying-requests-from-slack
    """

    def __init__(
        self,
        signing_secret: str,
        tolerance_seconds: int = 60 * 5,
        clock: Callable[[], float] = time.time,
    ):
        self.signing_secret = signing_secret
        self.tolerance_seconds = tolerance_seconds
        self.clock = clock

    def __call__(self, headers: Mapping[str, str], body: bytes) -> bool:
        timestamp = _get_header(headers, TIMESTAMP_HEADER)
        received = _get_header(headers, SIGNATURE_HEADER)
        if not timestamp or not received:
            logger.warning("Request is missing Slack timestamp or signature headers")
            return False

        try:
            ts = int(timestamp)
        except ValueError:
            logger.warning(f"Invalid Slack request timestamp: {timestamp!r}")
            return False

        # Replay protection
        if abs(self.clock() - ts) > self.tolerance_seconds:
            logger.warning(f"Slack request timestamp too old: {ts}")
            return False

        return hmac.compare_digest(self.sign(ts, body), received)

    def sign(self, timestamp: int, body: bytes) -> str:
        basestring = f"{VERSION}:{timestamp}:".encode("utf-8") + body
        digest = hmac.new(self.signing_secret.encode("utf-8"), basestring, hashlib.sha256).hexdigest()
        return f"{VERSION}={digest}"


def _get_header(headers: Mapping[str, str], name: str):
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value
