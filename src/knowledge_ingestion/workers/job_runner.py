"""Route a job message to the coordinator that runs it."""

from knowledge_ingestion.models.jobs import DeletionJob, IngestionJob
from knowledge_ingestion.services.deletion_coordinator import DeletionCoordinator
from knowledge_ingestion.services.ingestion_coordinator import IngestionCoordinator
from knowledge_ingestion.utils.errors import ValidationError
from knowledge_ingestion.utils.logging import get_logger
from knowledge_ingestion.workers.job_dispatcher import Job

logger = get_logger("job_runner")


class JobRunner:
    def __init__(self, ingestion: IngestionCoordinator, deletion: DeletionCoordinator):
        self._ingestion = ingestion
        self._deletion = deletion

    async def run(self, job: Job) -> None:
        logger.debug(f"Running job: job_id={job.job_id}, type={job.job_type}")
        if isinstance(job, IngestionJob):
            await self._ingestion.process(job)
        elif isinstance(job, DeletionJob):
            await self._deletion.run(job)
        else:
            raise ValidationError(f"Unknown job type: {type(job).__name__}")
