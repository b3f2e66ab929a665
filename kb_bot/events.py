"""Slack Events API payloads."""
import hashlib
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from kb_bot.errors import MalformedEvent

EVENT_CALLBACK_TYPE = "event_callback"
URL_VERIFICATION_TYPE = "url_verification"
APP_MENTION_EVENT_TYPE = "app_mention"

USER_MENTION_RE = re.compile(r"<@[^>]*>")


@dataclass
class MessageEvent:
    """
    The inner ``event`` of an app_mention callback.

    Example:
        {"type": "app_mention", "user": "U061F7AUR", "channel": "C123ABC456",
         "text": "<@U0LAN0Z89> is it everything a river should be?",
         "ts": "1515449522.000016", "event_ts": "1515449522.000016"}
    """

    channel: str
    type: str
    event_ts: str  # replies are threaded on this
    text: str
    user: str


@dataclass
class EventCallback:
    type: str
    event_id: Optional[str]
    event_time: Optional[int]
    event: MessageEvent

    @property
    def is_app_mention(self) -> bool:
        return self.type == EVENT_CALLBACK_TYPE and self.event.type == APP_MENTION_EVENT_TYPE


def parse_event_callback(payload: Dict[str, Any]) -> EventCallback:
    """Build an EventCallback, raising MalformedEvent if the channel is missing."""
    event = payload.get("event")
    if not isinstance(event, dict):
        raise MalformedEvent("event callback has no event object")

    channel = event.get("channel")
    if not channel or not isinstance(channel, str):
        raise MalformedEvent("event has no channel to order by")

    return EventCallback(
        type=payload.get("type", ""),
        event_id=payload.get("event_id"),
        event_time=payload.get("event_time"),
        event=MessageEvent(
            channel=channel,
            type=event.get("type", ""),
            event_ts=event.get("event_ts") or event.get("ts") or "",
            text=event.get("text") or "",
            user=event.get("user") or "",
        ),
    )


def ordering_key(callback: EventCallback) -> str:
    """Messages from one channel are processed in order."""
    return callback.event.channel


def dedup_token(callback: EventCallback, body: bytes) -> str:
    """Slack's event_id, which is stable across Slack's own retries."""
    if callback.event_id:
        return callback.event_id
    return hashlib.sha256(body).hexdigest()


def strip_user_mentions(text: str) -> str:
    return USER_MENTION_RE.sub("", text).strip()
