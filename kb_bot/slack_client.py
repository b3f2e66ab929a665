"""Minimal Slack Web API client for posting answers back into threads."""
import time
from typing import Any, Dict, Optional

import requests

from kb_bot.knowledge_base import RetrievalResult
from kb_bot.logging_conf import logger

MAX_ATTEMPTS = 3


class SlackError(Exception):
    """Slack accepted the request but reported a failure."""


class SlackClient:
    """Posts retrieval results with a bot token."""

    def __init__(self, bot_token: str, session: Optional[requests.Session] = None):
        self.base_url = "https://slack.com/api"
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {bot_token}",
            "Content-Type": "application/json;charset=UTF-8",
        })

    def post_retrieve_result(self, channel_id: str, thread_ts: str, user_id: str, result: RetrievalResult) -> Dict[str, Any]:
        """
        Reply in the thread of the mention that asked the question.

        Args:
            channel_id: Slack channel of the mention
            thread_ts: event_ts of the mention
            user_id: user to mention in the reply
            result: generated answer and its references

        Raises:
            requests.HTTPError or SlackError if the message was not posted
        """
        body = {
            "channel": channel_id,
            "thread_ts": thread_ts,
            "blocks": [
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": format_answer(user_id, result)},
                }
            ],
        }
        response = self._request("POST", "/chat.postMessage", json=body)
        if not response.get("ok"):
            raise SlackError(f"chat.postMessage failed: {response.get('error', 'unknown error')}")
        logger.info(f"Posted answer to {channel_id} thread {thread_ts}")
        return response

    def _request(self, method: str, endpoint: str, retry_count: int = 0, **kwargs) -> Dict[str, Any]:
        """Make API request with retry logic."""
        url = f"{self.base_url}{endpoint}"

        try:
            response = self.session.request(method=method, url=url, timeout=30, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            if retry_count + 1 < MAX_ATTEMPTS:
                wait_time = 2 ** retry_count
                logger.warning(f"Slack request failed ({e}). Retrying in {wait_time}s...")
                time.sleep(wait_time)
                return self._request(method, endpoint, retry_count + 1, **kwargs)
            raise

        if response.status_code == 429 and retry_count + 1 < MAX_ATTEMPTS:
            retry_after = int(response.headers.get("Retry-After", 30))
            logger.warning(f"Rate limited. Waiting {retry_after}s...")
            time.sleep(retry_after)
            return self._request(method, endpoint, retry_count + 1, **kwargs)

        if response.status_code >= 500 and retry_count + 1 < MAX_ATTEMPTS:
            wait_time = 2 ** retry_count
            logger.warning(f"Server error {response.status_code}. Retrying in {wait_time}s...")
            time.sleep(wait_time)
            return self._request(method, endpoint, retry_count + 1, **kwargs)

        response.raise_for_status()
        return response.json()


def format_answer(user_id: str, result: RetrievalResult) -> str:
    references = [f"{index}: <{url}>" for index, url in enumerate(result.reference_urls, start=1)]
    reference_text = "\n\nRelated URLs: \n" + "\n".join(references) if references else ""
    return f"<@{user_id}>\n{result.text}{reference_text}"
