"""Wire collaborators into coordinators.

Every collaborator is a constructor argument so tests can substitute a fake
index, storage or extractor; anything left out gets its production default.
"""

from dataclasses import dataclass
from typing import Optional

from knowledge_ingestion.config import JobBackend, get_settings
from knowledge_ingestion.database.session import SessionFactory
from knowledge_ingestion.services.chunking_service import ChunkingService
from knowledge_ingestion.services.deletion_coordinator import DeletionCoordinator
from knowledge_ingestion.services.document_catalog import DocumentCatalog
from knowledge_ingestion.services.document_index import DocumentIndex, QdrantDocumentIndex
from knowledge_ingestion.services.document_locks import DocumentLocks
from knowledge_ingestion.services.extraction_service import ContentExtractionService, ContentExtractor
from knowledge_ingestion.services.file_change_service import FileChangeService
from knowledge_ingestion.services.ingestion_coordinator import IngestionCoordinator
from knowledge_ingestion.services.knowledge_base_service import KnowledgeBaseService
from knowledge_ingestion.services.namespace_resolver import NamespaceResolver
from knowledge_ingestion.services.notifications_service import NotificationsService
from knowledge_ingestion.services.retrieval_gateway import RetrievalGateway
from knowledge_ingestion.services.scraper_service import WebScraper
from knowledge_ingestion.services.storage_service import AzureBlobStorage, BlobStorage
from knowledge_ingestion.services.summarizer_service import LLMSummarizer, Summarizer
from knowledge_ingestion.utils.logging import get_logger
from knowledge_ingestion.workers.job_dispatcher import (
    InProcessJobDispatcher,
    JobDispatcher,
    RabbitMQJobDispatcher,
)
from knowledge_ingestion.workers.job_runner import JobRunner

logger = get_logger("container")
settings = get_settings()


@dataclass
class ServiceContainer:
    knowledge_bases: KnowledgeBaseService
    notifications: NotificationsService
    file_changes: FileChangeService
    resolver: NamespaceResolver
    index: DocumentIndex
    storage: BlobStorage
    dispatcher: JobDispatcher
    ingestion: IngestionCoordinator
    deletion: DeletionCoordinator
    retrieval: RetrievalGateway
    catalog: DocumentCatalog
    runner: JobRunner
    scraper: Optional[WebScraper] = None

    async def close(self) -> None:
        await self.dispatcher.close()
        if self.scraper is not None:
            await self.scraper.close()
        await self.storage.close()
        logger.info("Service container closed")


def build_container(
    session_factory: Optional[SessionFactory] = None,
    index: Optional[DocumentIndex] = None,
    storage: Optional[BlobStorage] = None,
    extractor: Optional[ContentExtractor] = None,
    dispatcher: Optional[JobDispatcher] = None,
    summarizer: Optional[Summarizer] = None,
    scraper: Optional[WebScraper] = None,
    chunker: Optional[ChunkingService] = None,
) -> ServiceContainer:
    if index is None:
        index = QdrantDocumentIndex()
    if storage is None:
        storage = AzureBlobStorage()
    if extractor is None:
        extractor = ContentExtractionService(storage)
    if summarizer is None:
        summarizer = LLMSummarizer()
    if scraper is None:
        scraper = WebScraper()
    if dispatcher is None:
        dispatcher = (
            RabbitMQJobDispatcher()
            if settings.jobs.backend == JobBackend.RABBITMQ
            else InProcessJobDispatcher()
        )

    knowledge_bases = KnowledgeBaseService(session_factory)
    notifications = NotificationsService(session_factory)
    file_changes = FileChangeService(session_factory)
    resolver = NamespaceResolver(knowledge_bases)
    locks = DocumentLocks()

    ingestion = IngestionCoordinator(
        resolver,
        index,
        storage,
        extractor,
        notifications,
        file_changes,
        dispatcher=dispatcher,
        chunker=chunker,
        locks=locks,
        scraper=scraper,
    )
    deletion = DeletionCoordinator(
        resolver,
        index,
        storage,
        notifications,
        file_changes,
        dispatcher=dispatcher,
        locks=locks,
    )
    runner = JobRunner(ingestion, deletion)
    dispatcher.bind(runner.run)

    logger.info(f"Service container built: job_backend={type(dispatcher).__name__}")
    return ServiceContainer(
        knowledge_bases=knowledge_bases,
        notifications=notifications,
        file_changes=file_changes,
        resolver=resolver,
        index=index,
        storage=storage,
        dispatcher=dispatcher,
        ingestion=ingestion,
        deletion=deletion,
        retrieval=RetrievalGateway(resolver, index, summarizer),
        catalog=DocumentCatalog(resolver, index, storage),
        runner=runner,
        scraper=scraper,
    )
