"""Background generation jobs: script → speech → one stored, linked artifact."""

import asyncio
import logging
import uuid

from podcast_producer.assembly import assemble
from podcast_producer.errors import NoSegmentsError
from podcast_producer.models import GenerationJob, JobStage
from podcast_producer.parser import parse_script
from podcast_producer.storage import PersistenceGateway
from podcast_producer.tts import TTSClient

logger = logging.getLogger(__name__)


class Orchestrator:
    """Runs one job per generation request.

    Callers get a job id from launch() and nothing else: the outcome is only
    visible in the logs and as the content record's new audioLink.
    """

    def __init__(self, tts_client: TTSClient, gateway: PersistenceGateway):
        self.tts_client = tts_client
        self.gateway = gateway
        self._tasks: set[asyncio.Task] = set()

    def launch(self, content_id: str, title: str, script: str) -> str:
        """Start a detached job on the running loop and return its id."""
        job = GenerationJob(
            job_id=uuid.uuid4().hex[:12],
            content_id=content_id,
            title=title,
            script=script,
        )
        task = asyncio.get_running_loop().create_task(
            self._execute(job), name=f"generate-audio-{job.job_id}",
        )
        # Hold a reference so the task isn't garbage-collected mid-run
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Launched job %s for content %s (%r)", job.job_id, content_id, title)
        return job.job_id

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every launched job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, content_id: str, title: str, script: str) -> GenerationJob:
        """Run a job in the current task and return it in its terminal state."""
        job = GenerationJob(
            job_id=uuid.uuid4().hex[:12],
            content_id=content_id,
            title=title,
            script=script,
        )
        return await self._execute(job)

    async def _execute(self, job: GenerationJob) -> GenerationJob:
        try:
            key = await self._pipeline(job)
        except Exception as e:
            stage = job.stage
            job.fail(f"{type(e).__name__}: {e}")
            logger.error(
                "Job %s for content %s failed during %s: %s",
                job.job_id, job.content_id, stage.value, job.error,
            )
            return job
        job.succeed(key)
        logger.info(
            "Job %s for content %s succeeded: %d segments, %d skipped, audio at %s",
            job.job_id, job.content_id, job.segments_generated, job.lines_skipped, key,
        )
        return job

    def _enter(self, job: GenerationJob, stage: JobStage) -> None:
        job.stage = stage
        logger.debug("Job %s → %s", job.job_id, stage.value)

    async def _pipeline(self, job: GenerationJob) -> str:
        self._enter(job, JobStage.PARSING)
        lines = parse_script(job.script)
        logger.info("Job %s: parsed %d dialogue lines", job.job_id, len(lines))

        self._enter(job, JobStage.GENERATING)
        segments, skipped = await self.tts_client.generate_tts(lines)
        job.segments_generated = len(segments)
        job.lines_skipped = skipped
        if not segments:
            raise NoSegmentsError(
                f"No audio generated ({len(lines)} lines parsed, {skipped} skipped)"
            )

        self._enter(job, JobStage.ACCUMULATING)
        audio = assemble(segments)

        self._enter(job, JobStage.PERSISTING)
        return await self.gateway.persist(job.content_id, job.title, audio, job_id=job.job_id)
