"""Scheduled knowledge base synchronization."""
from kb_bot.knowledge_base import KnowledgeBaseClient
from kb_bot.logging_conf import logger


class SyncHandler:
    """Starts ingestion for every data source. Takes no payload."""

    def __init__(self, knowledge_base: KnowledgeBaseClient):
        self.knowledge_base = knowledge_base

    def __call__(self) -> None:
        started = self.knowledge_base.start_data_sync()
        logger.info(f"Data sync started for {len(started)} data sources")
