"""Spool-directory based queue with per-key ordering and visibility leases."""
import hashlib
import json
import os
import re
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from kb_bot import settings
from kb_bot.errors import EnqueueUnavailable, InvalidLease
from kb_bot.logging_conf import logger
from kb_bot.queue.models import EnqueueResult, EventMessage, LeaseHandle


class SpoolQueue:
    """
    FIFO-per-ordering-key queue stored as one JSON file per message.

    Layout under ``base_dir``:
        groups/<key>/<message_id>.msg   pending or leased messages
        dedup/<sha256>.tok              recently accepted dedup tokens
        dead/<key>/<message_id>.msg     messages past ``max_receive_count``

    Only the oldest message of a key can be delivered. While it is leased the
    key is blocked; once the lease expires the same message is redelivered.
    """

    def __init__(
        self,
        base_dir: Path,
        visibility_timeout: float = settings.VISIBILITY_TIMEOUT_SECONDS,
        dedup_window: float = settings.DEDUP_WINDOW_SECONDS,
        max_receive_count: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.base_dir = Path(base_dir)
        self.groups_dir = self.base_dir / "groups"
        self.dedup_dir = self.base_dir / "dedup"
        self.dead_dir = self.base_dir / "dead"
        self.visibility_timeout = visibility_timeout
        self.dedup_window = dedup_window
        self.max_receive_count = max_receive_count
        self.clock = clock

        # Ensure directories exist
        for directory in (self.groups_dir, self.dedup_dir, self.dead_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._last_seq = self._highest_message_seq()

    @classmethod
    def from_config(cls, config: settings.Config) -> "SpoolQueue":
        return cls(
            config.spool_dir,
            visibility_timeout=config.visibility_timeout,
            dedup_window=config.dedup_window,
            max_receive_count=config.max_receive_count,
        )

    def enqueue(self, body: bytes, ordering_key: str, dedup_token: str) -> EnqueueResult:
        """Store a message unless its dedup token was accepted within the window."""
        if not ordering_key or not dedup_token:
            raise ValueError("ordering_key and dedup_token are required")

        with self._lock:
            now = self.clock()
            try:
                token_path = self._token_path(dedup_token)
                if self._token_is_live(token_path, now):
                    logger.info(
                        f"Spool deduplicated {ordering_key}:{dedup_token}",
                        extra={"ordering_key": ordering_key, "dedup_token": dedup_token},
                    )
                    return EnqueueResult.DEDUPLICATED

                message = EventMessage(
                    message_id=self._next_message_id(),
                    ordering_key=ordering_key,
                    dedup_token=dedup_token,
                    body=bytes(body),
                    enqueued_at=now,
                )
                group_dir = self._group_dir(ordering_key)
                group_dir.mkdir(parents=True, exist_ok=True)
                # Message before token: a failure in between can only duplicate, never lose
                self._write_json(group_dir / f"{message.message_id}.msg", message.to_record())
                self._write_json(token_path, {"dedup_token": dedup_token, "accepted_at": now})
            except OSError as e:
                logger.error(f"Failed to spool enqueue: {e}", exc_info=True)
                raise EnqueueUnavailable(f"Spool unavailable: {e}") from e

        logger.info(
            f"Spool enqueued {ordering_key}:{message.message_id}",
            extra={"ordering_key": ordering_key, "message_id": message.message_id},
        )
        return EnqueueResult.ACCEPTED

    def dequeue(self, max_messages: int = 1) -> List[Tuple[EventMessage, LeaseHandle]]:
        """Lease up to max_messages visible heads, oldest first."""
        with self._lock:
            now = self.clock()
            try:
                heads = []
                for group_dir in self._list_groups():
                    head = self._visible_head(group_dir, now)
                    if head is not None:
                        heads.append(head)
                heads.sort(key=lambda head: head[1].message_id)

                batch = []
                for path, message in heads[:max_messages]:
                    message.receive_count += 1
                    message.receipt = uuid.uuid4().hex
                    message.leased_until = now + self.visibility_timeout
                    self._write_json(path, message.to_record())
                    lease = LeaseHandle(message.ordering_key, message.message_id, message.receipt)
                    batch.append((message, lease))
                return batch
            except OSError as e:
                logger.error(f"Failed to dequeue from spool: {e}", exc_info=True)
                return []

    def delete(self, lease: LeaseHandle) -> None:
        """Permanently remove a leased message."""
        with self._lock:
            path = self._group_dir(lease.ordering_key) / f"{lease.message_id}.msg"
            try:
                message = self._read_message(path)
            except FileNotFoundError:
                raise InvalidLease(f"No such message: {lease.message_id}") from None

            if message.receipt != lease.receipt:
                raise InvalidLease(f"Lease superseded by a later delivery: {lease.message_id}")
            if not message.is_leased(self.clock()):
                raise InvalidLease(f"Lease expired: {lease.message_id}")

            path.unlink(missing_ok=True)
            self._remove_if_empty(path.parent)

        logger.info(
            f"Spool deleted {lease.ordering_key}:{lease.message_id}",
            extra={"ordering_key": lease.ordering_key, "message_id": lease.message_id},
        )

    def purge_expired_tokens(self) -> int:
        """Drop dedup tokens older than the dedup window."""
        removed = 0
        with self._lock:
            now = self.clock()
            for token_path in self._list_files(self.dedup_dir, ".tok"):
                if not self._token_is_live(token_path, now):
                    token_path.unlink(missing_ok=True)
                    removed += 1
        return removed

    def size(self) -> int:
        """Number of pending or leased messages."""
        try:
            return sum(len(self._list_files(d, ".msg")) for d in self._list_groups())
        except OSError:
            return 0

    def dead_letter_count(self) -> int:
        try:
            return sum(
                len(self._list_files(d, ".msg")) for d in self.dead_dir.iterdir() if d.is_dir()
            )
        except OSError:
            return 0

    def _visible_head(self, group_dir: Path, now: float) -> Optional[Tuple[Path, EventMessage]]:
        """Return the deliverable head of a key, or None if empty or blocked."""
        while True:
            files = self._list_files(group_dir, ".msg")
            if not files:
                self._remove_if_empty(group_dir)
                return None

            path = files[0]
            try:
                message = self._read_message(path)
            except FileNotFoundError:
                continue
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Unreadable spool file {path}: {e}")
                self._dead_letter(path)
                continue

            if message.is_leased(now):
                return None

            if message.leased_until is not None:
                if self.max_receive_count and message.receive_count >= self.max_receive_count:
                    logger.error(
                        f"Giving up on {message.ordering_key}:{message.message_id} "
                        f"after {message.receive_count} deliveries",
                        extra={"ordering_key": message.ordering_key, "message_id": message.message_id},
                    )
                    self._dead_letter(path)
                    continue
                logger.info(
                    f"Lease expired; redelivering {message.ordering_key}:{message.message_id}",
                    extra={"ordering_key": message.ordering_key, "message_id": message.message_id},
                )
            return path, message

    def _dead_letter(self, path: Path) -> None:
        target_dir = self.dead_dir / path.parent.name
        target_dir.mkdir(parents=True, exist_ok=True)
        os.replace(path, target_dir / path.name)
        self._remove_if_empty(path.parent)

    def _next_message_id(self) -> str:
        """Monotonic, zero-padded id so lexical order is enqueue order."""
        seq = max(time.time_ns(), self._last_seq + 1)
        self._last_seq = seq
        return f"{seq:020d}"

    def _highest_message_seq(self) -> int:
        """Largest id already on disk, so ids stay ordered if the clock steps back."""
        highest = 0
        for root in (self.groups_dir, self.dead_dir):
            for path in root.glob("*/*.msg"):
                if path.stem.isdigit():
                    highest = max(highest, int(path.stem))
        return highest

    def _token_is_live(self, token_path: Path, now: float) -> bool:
        try:
            with open(token_path, "r") as f:
                accepted_at = float(json.load(f)["accepted_at"])
        except FileNotFoundError:
            return False
        except (ValueError, KeyError, TypeError):
            return False
        return now - accepted_at < self.dedup_window

    def _token_path(self, dedup_token: str) -> Path:
        digest = hashlib.sha256(dedup_token.encode("utf-8")).hexdigest()
        return self.dedup_dir / f"{digest}.tok"

    def _group_dir(self, ordering_key: str) -> Path:
        return self.groups_dir / self._safe_key(ordering_key)

    def _safe_key(self, value: str) -> str:
        """Make a safe, collision-free directory name from an ordering key."""
        digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]
        return f"{re.sub(r'[^A-Za-z0-9._-]', '_', value)[:64]}-{digest}"

    def _list_groups(self) -> List[Path]:
        try:
            return [p for p in self.groups_dir.iterdir() if p.is_dir()]
        except FileNotFoundError:
            return []

    def _list_files(self, directory: Path, suffix: str) -> List[Path]:
        """List files with a given suffix, sorted by name."""
        try:
            return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == suffix)
        except FileNotFoundError:
            return []

    def _read_message(self, path: Path) -> EventMessage:
        with open(path, "r") as f:
            return EventMessage.from_record(json.load(f))

    def _write_json(self, path: Path, data: dict) -> None:
        """Write via a temp file so readers never see a partial record."""
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w") as f:
            json.dump(data, f)
        os.replace(tmp_path, path)

    def _remove_if_empty(self, directory: Path) -> None:
        try:
            directory.rmdir()
        except OSError:
            pass
