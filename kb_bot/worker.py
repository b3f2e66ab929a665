"""Worker threads feeding queued messages to the consumer handler."""
import threading
import time
from typing import List

from kb_bot import settings
from kb_bot.consumer import ConsumerHandler
from kb_bot.logging_conf import logger
from kb_bot.queue.spool_queue import SpoolQueue


class Worker:
    """Polls the queue and invokes the consumer with one message at a time."""

    def __init__(self, queue: SpoolQueue, consumer: ConsumerHandler, concurrency: int = 1, poll_interval: float = 1.0):
        self.queue = queue
        self.consumer = consumer
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.batch_size = settings.CONSUMER_BATCH_SIZE
        self.running = False
        self.threads: List[threading.Thread] = []

    def start(self):
        """Start the worker threads."""
        if self.running:
            logger.warning("Worker is already running")
            return

        self.running = True
        self.threads = [
            threading.Thread(target=self._run, name=f"worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        for thread in self.threads:
            thread.start()
        logger.info(f"Worker started ({self.concurrency} threads)")

    def stop(self):
        """Stop the worker."""
        if not self.running:
            return

        self.running = False
        for thread in self.threads:
            thread.join(timeout=10)
        self.threads = []
        logger.info("Worker stopped")

    def run_once(self) -> int:
        """Dequeue and consume one batch. Returns how many messages were handled."""
        batch = self.queue.dequeue(max_messages=self.batch_size)
        for message, lease in batch:
            self.consumer.handle(message, lease)
        return len(batch)

    def _run(self):
        """Main worker loop."""
        logger.info("Worker thread started")

        while self.running:
            try:
                if not self.run_once():
                    self.queue.purge_expired_tokens()
                    time.sleep(self.poll_interval)
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                time.sleep(5)

        logger.info("Worker thread stopped")
