"""Answer queued app mentions from the knowledge base."""
import json

from kb_bot import events
from kb_bot.knowledge_base import KnowledgeBaseClient
from kb_bot.logging_conf import logger
from kb_bot.queue.models import EventMessage
from kb_bot.slack_client import SlackClient


class MentionProcessor:
    """Turns one queued mention into a threaded Slack reply."""

    def __init__(self, knowledge_base: KnowledgeBaseClient, slack: SlackClient):
        self.knowledge_base = knowledge_base
        self.slack = slack

    def __call__(self, message: EventMessage) -> None:
        self.process(message)

    def process(self, message: EventMessage) -> None:
        """
        Query the knowledge base with the mention text and reply in its thread.

        Raises:
            Any error from parsing, the knowledge base or Slack. The caller
            leaves the message leased so it is redelivered.
        """
        callback = events.parse_event_callback(json.loads(message.body))
        event = callback.event
        question = events.strip_user_mentions(event.text)

        if not question:
            logger.info(f"Mention {message.message_id} has no question, nothing to answer")
            return

        logger.info(f"Answering mention from {event.user} in {event.channel}")
        result = self.knowledge_base.retrieve(question)
        self.slack.post_retrieve_result(event.channel, event.event_ts, event.user, result)
