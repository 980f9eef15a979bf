"""Shared fixtures and fakes for podcast producer tests."""

from datetime import datetime, timezone

import pytest

from podcast_producer.errors import AuthProviderError, TransientProviderError, TransientStorageError
from podcast_producer.models import SynthesisResult
from podcast_producer.pipeline import Orchestrator
from podcast_producer.retry import RetryPolicy
from podcast_producer.storage import PersistenceGateway
from podcast_producer.tts import TTSClient
from podcast_producer.voices import VoiceProfile

FIXED_NOW = datetime(2026, 10, 18, 12, 30, 45, 123000, tzinfo=timezone.utc)


def audio_for(text: str) -> bytes:
    """Deterministic fake MP3 payload for a line of text."""
    return f"<mp3:{text}>".encode()


class FakeProvider:
    """Records calls; failures are queued per line text.

    failures = {"Hoi.": ["transient", "transient"]} fails the first two calls
    for "Hoi." and succeeds afterwards. "auth" raises AuthProviderError.
    """

    def __init__(self, failures=None, tokens=True):
        self.calls = []
        self.failures = {text: list(kinds) for text, kinds in (failures or {}).items()}
        self.tokens = tokens

    async def synthesize(self, voice_id, text, previous_tokens):
        self.calls.append((voice_id, text, list(previous_tokens)))
        pending = self.failures.get(text)
        if pending:
            kind = pending.pop(0)
            if kind == "auth":
                raise AuthProviderError("invalid api key")
            raise TransientProviderError("503 service unavailable")
        token = f"req-{len(self.calls)}" if self.tokens else None
        return SynthesisResult(audio=audio_for(text), continuity_token=token)


class FakeObjectStore:
    def __init__(self, fail_times=0):
        self.objects = {}
        self.attempts = []
        self.fail_times = fail_times

    async def put(self, key, data, content_type):
        self.attempts.append(key)
        if len(self.attempts) <= self.fail_times:
            raise TransientStorageError("S3 timeout")
        self.objects[key] = (data, content_type)


class FakeMetadataStore:
    def __init__(self, records=None, fail_times=0):
        self.records = records if records is not None else {}
        self.calls = []
        self.fail_times = fail_times

    async def update_audio_link(self, content_id, audio_link, updated_at):
        self.calls.append((content_id, audio_link, updated_at))
        if len(self.calls) <= self.fail_times:
            raise TransientStorageError("DynamoDB throttled")
        record = self.records.setdefault(content_id, {"id": content_id})
        record["audioLink"] = audio_link
        record["updatedAt"] = updated_at


@pytest.fixture
def no_delay():
    return RetryPolicy(max_attempts=3, base_delay=0.0)


@pytest.fixture
def voices():
    return VoiceProfile({"Lucas": "voice-lucas", "Betsie": "voice-betsie"})


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def metadata_store():
    return FakeMetadataStore(records={"book_1": {"id": "book_1", "audioLink": "audio/old.mp3"}})


def make_orchestrator(provider, voices, object_store, metadata_store, policy):
    tts_client = TTSClient(provider, voices, retry_policy=policy, line_delay=0)
    gateway = PersistenceGateway(
        object_store, metadata_store, retry_policy=policy, clock=lambda: FIXED_NOW,
    )
    return Orchestrator(tts_client, gateway)


@pytest.fixture
def orchestrator(provider, voices, object_store, metadata_store, no_delay):
    return make_orchestrator(provider, voices, object_store, metadata_store, no_delay)
