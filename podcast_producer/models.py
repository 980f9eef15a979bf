"""Data models for podcast audio generation."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class DialogLine:
    index: int         # position among parsed lines
    speaker: str
    text: str


@dataclass(frozen=True)
class AudioSegment:
    index: int         # index of the originating DialogLine
    audio: bytes


@dataclass(frozen=True)
class SynthesisResult:
    audio: bytes
    continuity_token: str | None = None


class JobStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class JobStage(str, Enum):
    STARTED = "started"
    PARSING = "parsing"
    GENERATING = "generating"
    ACCUMULATING = "accumulating"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass
class GenerationJob:
    """One end-to-end run of the pipeline. Lives in memory only."""

    job_id: str
    content_id: str
    title: str
    script: str
    status: JobStatus = JobStatus.RUNNING
    stage: JobStage = JobStage.STARTED
    error: str | None = None
    audio_key: str | None = None
    segments_generated: int = 0
    lines_skipped: int = 0

    def succeed(self, audio_key: str) -> None:
        self._finish(JobStatus.SUCCEEDED)
        self.audio_key = audio_key

    def fail(self, error: str) -> None:
        self._finish(JobStatus.FAILED)
        self.error = error

    def _finish(self, status: JobStatus) -> None:
        if self.status is not JobStatus.RUNNING:
            raise RuntimeError(f"Job {self.job_id} already {self.status.value}")
        self.status = status
        self.stage = JobStage.DONE


@dataclass
class ContentRecord:
    id: str
    title: str
    audioLink: str = ""
    transcriptLink: str = ""
    descriptionLink: str = ""
    updatedAt: str = ""
    extra: dict = field(default_factory=dict)
