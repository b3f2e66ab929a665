"""Consumer handler: run the deferred work for one leased message."""
import threading
from typing import Callable

from kb_bot import settings
from kb_bot.errors import ConsumerFailure, InvalidLease
from kb_bot.logging_conf import logger
from kb_bot.queue.models import EventMessage, LeaseHandle
from kb_bot.queue.spool_queue import SpoolQueue

Work = Callable[[EventMessage], None]


class ConsumerHandler:
    """
    Invokes the work for exactly one message and resolves its lease.

    Success deletes the message. Any failure, including running past
    ``timeout_seconds``, leaves the lease to expire so the queue redelivers.
    """

    def __init__(self, queue: SpoolQueue, work: Work, timeout_seconds: float = settings.CONSUMER_TIMEOUT_SECONDS):
        self.queue = queue
        self.work = work
        self.timeout_seconds = timeout_seconds

    def handle(self, message: EventMessage, lease: LeaseHandle) -> bool:
        """Returns True if the message was processed and deleted."""
        context = {"ordering_key": message.ordering_key, "message_id": message.message_id}
        try:
            self._run_with_budget(message)
        except ConsumerFailure as e:
            logger.error(
                f"Consumer failed on {message.message_id} (delivery {message.receive_count}); "
                f"leaving it for redelivery: {e}",
                extra=context,
            )
            return False

        try:
            self.queue.delete(lease)
        except InvalidLease as e:
            logger.warning(f"Processed {message.message_id} but could not delete it: {e}", extra=context)
            return False

        logger.info(f"Processed {message.message_id}", extra=context)
        return True

    def _run_with_budget(self, message: EventMessage) -> None:
        # A timed-out call keeps running on its daemon thread; its result is ignored
        outcome = {}

        def target():
            try:
                self.work(message)
            except Exception as e:
                outcome["error"] = e

        thread = threading.Thread(target=target, name=f"consumer-work-{message.message_id}", daemon=True)
        thread.start()
        thread.join(timeout=self.timeout_seconds)

        if thread.is_alive():
            raise ConsumerFailure(f"timed out after {self.timeout_seconds}s")
        error = outcome.get("error")
        if error is not None:
            raise ConsumerFailure(f"{type(error).__name__}: {error}") from error
