"""Object storage, content-record updates, and the persistence gateway."""

import asyncio
import json
import logging
import os
import re
from datetime import datetime, timezone
from typing import Callable, Protocol

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from podcast_producer.constants import (
    AUDIO_CONTENT_TYPE,
    AUDIO_PREFIX,
    DESCRIPTION_PREFIX,
    TEXT_CONTENT_TYPE,
    TRANSCRIPT_PREFIX,
)
from podcast_producer.errors import MetadataUpdateError, TransientStorageError, UploadError
from podcast_producer.models import ContentRecord
from podcast_producer.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        ...


class MetadataStore(Protocol):
    async def update_audio_link(self, content_id: str, audio_link: str, updated_at: str) -> None:
        ...


def slug_from_title(title: str) -> str:
    """Convert a title to a key-safe slug.

    "De Avond" → "de_avond"
    "Harry Potter & de Steen der Wijzen" → "harry_potter_de_steen_der_wijzen"
    """
    slug = re.sub(r"[^a-zA-Z0-9]+", "_", title).strip("_").lower()
    return slug or "untitled"


def format_timestamp(moment: datetime) -> str:
    """Millisecond UTC timestamp usable inside an object key."""
    return moment.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%f")[:-3] + "Z"


def build_key(
    prefix: str, title: str, moment: datetime, extension: str, suffix: str = "",
) -> str:
    """Key namespaced by artifact type, title and generation time.

    A suffix (the job id) keeps keys from concurrent jobs apart when they
    share a title and a millisecond.
    """
    stamp = format_timestamp(moment)
    if suffix:
        stamp = f"{stamp}-{suffix}"
    return f"{prefix}/{slug_from_title(title)}/{stamp}.{extension}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# --- AWS backends ---

class S3ObjectStore:
    def __init__(self, session: aioboto3.Session, bucket: str):
        self.session = session
        self.bucket = bucket

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            async with self.session.client("s3") as s3:
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError) as e:
            raise TransientStorageError(f"S3 put {key} failed: {e}") from e


class DynamoMetadataStore:
    def __init__(self, session: aioboto3.Session, table_name: str):
        self.session = session
        self.table_name = table_name

    async def update_audio_link(self, content_id: str, audio_link: str, updated_at: str) -> None:
        try:
            async with self.session.client("dynamodb") as dynamodb:
                await dynamodb.update_item(
                    TableName=self.table_name,
                    Key={"id": {"S": content_id}},
                    UpdateExpression="SET audioLink = :audioLink, updatedAt = :updatedAt",
                    ExpressionAttributeValues={
                        ":audioLink": {"S": audio_link},
                        ":updatedAt": {"S": updated_at},
                    },
                )
        except (BotoCoreError, ClientError) as e:
            raise TransientStorageError(f"DynamoDB update {content_id} failed: {e}") from e


# --- Local backends ---

class LocalObjectStore:
    """Writes objects as files under root, mirroring the key layout."""

    def __init__(self, root: str):
        self.root = root

    def path_for(self, key: str) -> str:
        return os.path.join(self.root, *key.split("/"))

    def _write(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(self._write, key, data)
        except OSError as e:
            raise TransientStorageError(f"Local put {key} failed: {e}") from e


class LocalMetadataStore:
    """Content records as JSON files: <root>/records/<id>.json."""

    def __init__(self, root: str):
        self.records_dir = os.path.join(root, "records")

    def _path(self, content_id: str) -> str:
        safe = re.sub(r"[^a-zA-Z0-9_.-]+", "_", content_id)
        return os.path.join(self.records_dir, f"{safe}.json")

    def load_record(self, content_id: str) -> ContentRecord | None:
        """Read a record. Returns None if it doesn't exist."""
        path = self._path(content_id)
        if not os.path.exists(path):
            return None
        with open(path) as f:
            data = json.load(f)
        fields = set(ContentRecord.__dataclass_fields__) - {"extra"}
        known = {k: data.pop(k) for k in list(data) if k in fields}
        known.setdefault("id", content_id)
        known.setdefault("title", "")
        return ContentRecord(**known, extra=data)

    def save_record(self, record: ContentRecord) -> str:
        os.makedirs(self.records_dir, exist_ok=True)
        data = {k: v for k, v in vars(record).items() if k != "extra"}
        data.update(record.extra)
        path = self._path(record.id)
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
        return path

    def create_record(
        self,
        content_id: str,
        title: str,
        transcript_link: str = "",
        description_link: str = "",
    ) -> ContentRecord:
        """Create or refresh a record; an existing audioLink is kept."""
        record = self.load_record(content_id) or ContentRecord(id=content_id, title=title)
        record.title = title
        record.transcriptLink = transcript_link or record.transcriptLink
        record.descriptionLink = description_link or record.descriptionLink
        record.updatedAt = utc_now().isoformat()
        self.save_record(record)
        return record

    def _update(self, content_id: str, audio_link: str, updated_at: str) -> None:
        record = self.load_record(content_id) or ContentRecord(id=content_id, title="")
        record.audioLink = audio_link
        record.updatedAt = updated_at
        self.save_record(record)

    async def update_audio_link(self, content_id: str, audio_link: str, updated_at: str) -> None:
        try:
            await asyncio.to_thread(self._update, content_id, audio_link, updated_at)
        except (OSError, json.JSONDecodeError) as e:
            raise TransientStorageError(f"Local update {content_id} failed: {e}") from e


# --- Gateway ---

def _is_retryable_storage_error(error: Exception) -> bool:
    return isinstance(error, TransientStorageError)


class PersistenceGateway:
    """Uploads the artifact, then links it on the content record.

    The two steps are not atomic: a crash between them orphans the object
    but never points audioLink at a missing key.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_store: MetadataStore,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock

    async def _retry(self, operation, description: str):
        return await retry_with_backoff(
            operation,
            max_attempts=self.retry_policy.max_attempts,
            is_retryable=_is_retryable_storage_error,
            delays=self.retry_policy.delays(),
            description=description,
        )

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await self._retry(
                lambda: self.object_store.put(key, data, content_type),
                f"Upload {key}",
            )
        except TransientStorageError as e:
            raise UploadError(f"Upload of {key} failed after retries: {e}") from e

    async def link_audio(self, content_id: str, key: str) -> None:
        updated_at = self.clock().astimezone(timezone.utc).isoformat()
        try:
            await self._retry(
                lambda: self.metadata_store.update_audio_link(content_id, key, updated_at),
                f"Metadata update {content_id}",
            )
        except TransientStorageError as e:
            raise MetadataUpdateError(
                f"Linking {key} to {content_id} failed after retries: {e}"
            ) from e

    async def persist(
        self, content_id: str, title: str, audio: bytes, job_id: str = "",
    ) -> str:
        """Upload audio and point the record at it. Returns the object key."""
        key = build_key(AUDIO_PREFIX, title, self.clock(), "mp3", suffix=job_id)
        await self.upload(key, audio, AUDIO_CONTENT_TYPE)
        logger.info("Uploaded %s (%d bytes)", key, len(audio))
        await self.link_audio(content_id, key)
        logger.info("Linked %s to content record %s", key, content_id)
        return key

    async def store_text_artifacts(
        self, title: str, script: str, description: str | None = None,
    ) -> dict[str, str]:
        """Store transcript (and description) text ahead of a generation job.

        Returns {"transcriptLink": key, "descriptionLink": key-or-""}.
        """
        moment = self.clock()
        links = {"transcriptLink": "", "descriptionLink": ""}

        transcript_key = build_key(TRANSCRIPT_PREFIX, title, moment, "txt")
        await self.upload(transcript_key, script.encode("utf-8"), TEXT_CONTENT_TYPE)
        links["transcriptLink"] = transcript_key

        if description:
            description_key = build_key(DESCRIPTION_PREFIX, title, moment, "txt")
            await self.upload(description_key, description.encode("utf-8"), TEXT_CONTENT_TYPE)
            links["descriptionLink"] = description_key

        return links
