"""Main application - serves the webhook, runs the workers and the sync schedule."""
import sys
from typing import Optional

import uvicorn

from kb_bot import settings
from kb_bot.checkpoint import FiringCheckpoint
from kb_bot.consumer import ConsumerHandler
from kb_bot.ingress import IngressHandler, create_app
from kb_bot.knowledge_base import KnowledgeBaseClient
from kb_bot.logging_conf import logger
from kb_bot.mention_processor import MentionProcessor
from kb_bot.queue.spool_queue import SpoolQueue
from kb_bot.scheduler import SyncScheduler
from kb_bot.signature import SlackSignatureVerifier
from kb_bot.slack_client import SlackClient
from kb_bot.sync_handler import SyncHandler
from kb_bot.worker import Worker


class Application:
    """Wires the three entry points of one deployment around a shared spool."""

    def __init__(self, config: Optional[settings.Config] = None):
        self.config = config or settings.Config.from_env()
        self.queue = None
        self.worker = None
        self.scheduler = None
        self.server = None
        self.running = False

    def build(self):
        config = self.config
        config.validate()

        self.queue = SpoolQueue.from_config(config)
        knowledge_base = KnowledgeBaseClient(
            config.knowledge_base_id,
            model_arn=config.chat_model_id,
            region_name=config.aws_region,
        )
        slack = SlackClient(config.bot_oauth_token)

        consumer = ConsumerHandler(
            self.queue,
            MentionProcessor(knowledge_base, slack),
            timeout_seconds=config.consumer_timeout,
        )
        self.worker = Worker(
            self.queue,
            consumer,
            concurrency=config.worker_concurrency,
            poll_interval=config.poll_interval,
        )
        self.scheduler = SyncScheduler(
            SyncHandler(knowledge_base),
            schedule=config.sync_schedule,
            checkpoint=FiringCheckpoint(config.checkpoint_dir),
        )

        ingress = IngressHandler(self.queue, SlackSignatureVerifier(config.slack_signing_secret))
        self.server = uvicorn.Server(
            uvicorn.Config(create_app(ingress), host=config.host, port=config.port, log_config=None)
        )

    def start(self):
        """Start the background components."""
        logger.info("=" * 50)
        logger.info("Knowledge base bot")
        logger.info("=" * 50)
        logger.info(f"Spool: {self.config.spool_dir}")
        logger.info(f"Listening on: {self.config.host}:{self.config.port}")
        logger.info(f"Workers: {self.config.worker_concurrency}")
        logger.info("=" * 50)

        self.build()
        self.worker.start()
        self.scheduler.start()
        self.running = True
        logger.info("Started - waiting for events")

    def stop(self):
        """Stop the application."""
        if not self.running:
            return
        self.running = False
        self.scheduler.stop()
        self.worker.stop()
        logger.info("Stopped")

    def run(self):
        """Serve until uvicorn receives SIGINT/SIGTERM."""
        self.start()
        try:
            self.server.run()
        finally:
            self.stop()


def main():
    """Entry point."""
    app = Application()
    try:
        app.run()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
