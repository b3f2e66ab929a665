"""Bedrock knowledge base access: answer questions and start data syncs."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from kb_bot.logging_conf import logger


@dataclass
class RetrievalResult:
    text: str
    reference_urls: List[str] = field(default_factory=list)


class KnowledgeBaseClient:
    """Wraps the bedrock-agent-runtime and bedrock-agent clients."""

    def __init__(
        self,
        knowledge_base_id: str,
        model_arn: Optional[str] = None,
        region_name: Optional[str] = None,
        runtime_client: Any = None,
        agent_client: Any = None,
    ):
        self.knowledge_base_id = knowledge_base_id
        self.model_arn = model_arn
        self.runtime_client = runtime_client or boto3.client("bedrock-agent-runtime", region_name=region_name)
        self.agent_client = agent_client or boto3.client("bedrock-agent", region_name=region_name)

    def retrieve(self, query: str) -> RetrievalResult:
        """Retrieve-and-generate an answer, keeping Confluence citation URLs."""
        if not self.model_arn:
            raise ValueError("A model ARN is required to generate answers")

        response = self.runtime_client.retrieve_and_generate(
            input={"text": query},
            retrieveAndGenerateConfiguration={
                "type": "KNOWLEDGE_BASE",
                "knowledgeBaseConfiguration": {
                    "knowledgeBaseId": self.knowledge_base_id,
                    "modelArn": self.model_arn,
                },
            },
        )

        output = response.get("output") or {}
        if "text" not in output:
            raise ValueError("Fail to generate an output for the input.")

        return RetrievalResult(
            text=output["text"],
            reference_urls=_confluence_urls(response.get("citations", [])),
        )

    def start_data_sync(self) -> List[str]:
        """
        Start an ingestion job for every data source of the knowledge base.

        Returns:
            IDs of the data sources whose job was started

        Raises:
            ClientError/BotoCoreError if the data sources cannot be listed
        """
        paginator = self.agent_client.get_paginator("list_data_sources")
        datasource_ids = []
        for page in paginator.paginate(knowledgeBaseId=self.knowledge_base_id):
            for summary in page.get("dataSourceSummaries", []):
                datasource_ids.append(summary["dataSourceId"])

        logger.info(f"Syncing data sources: {datasource_ids}")

        started = []
        for datasource_id in datasource_ids:
            try:
                self.agent_client.start_ingestion_job(
                    knowledgeBaseId=self.knowledge_base_id,
                    dataSourceId=datasource_id,
                )
                started.append(datasource_id)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error starting data sync for {datasource_id}: {e}")
        return started


def _confluence_urls(citations: List[Dict[str, Any]]) -> List[str]:
    urls = []
    for citation in citations:
        for reference in citation.get("retrievedReferences", []):
            location = reference.get("location") or {}
            if location.get("type") != "CONFLUENCE":
                continue
            url = (location.get("confluenceLocation") or {}).get("url")
            if url:
                urls.append(url)
    return urls
