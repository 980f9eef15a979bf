"""Runtime settings from the environment, and collaborator wiring."""

import math
import os
from dataclasses import dataclass

import aioboto3

from podcast_producer.constants import (
    DEFAULT_REGION,
    DEFAULT_TABLE_NAME,
    LINE_DELAY,
    OUTPUT_DIR,
    RETRY_BASE_DELAY,
    RETRY_MAX_ATTEMPTS,
)
from podcast_producer.errors import ConfigurationError
from podcast_producer.pipeline import Orchestrator
from podcast_producer.retry import RetryPolicy
from podcast_producer.storage import (
    DynamoMetadataStore,
    LocalMetadataStore,
    LocalObjectStore,
    PersistenceGateway,
    S3ObjectStore,
)
from podcast_producer.tts import EdgeTTSProvider, ElevenLabsProvider, TTSClient
from podcast_producer.voices import VoiceProfile, load_voice_profile

TTS_BACKENDS = ("elevenlabs", "edge")
STORE_BACKENDS = ("aws", "local")


def _float_setting(env, name: str, default: float) -> float:
    value = env.get(name)
    if value is None or not value.strip():
        return default
    try:
        number = float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number) or number < 0:
        raise ConfigurationError(f"{name} must be a non-negative number, got {value!r}")
    return number


@dataclass
class Settings:
    tts_backend: str = "elevenlabs"
    elevenlabs_api_key: str = ""
    store: str = "aws"
    region: str = DEFAULT_REGION
    access_key_id: str = ""
    secret_access_key: str = ""
    bucket: str = ""
    table_name: str = DEFAULT_TABLE_NAME
    voices_file: str = ""
    output_dir: str = OUTPUT_DIR
    retry_max_attempts: int = RETRY_MAX_ATTEMPTS
    retry_base_delay: float = RETRY_BASE_DELAY
    line_delay: float = LINE_DELAY

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            tts_backend=env.get("PODCAST_TTS_BACKEND", "elevenlabs").strip().lower(),
            elevenlabs_api_key=env.get("ELEVEN_LABS_API_KEY", ""),
            store=env.get("PODCAST_STORE", "aws").strip().lower(),
            region=env.get("REGION", DEFAULT_REGION),
            access_key_id=env.get("ACCESS_KEY_ID", ""),
            secret_access_key=env.get("SECRET_ACCESS_KEY", ""),
            bucket=env.get("S3_BUCKET_NAME", ""),
            table_name=env.get("PODCAST_TABLE_NAME", DEFAULT_TABLE_NAME),
            voices_file=env.get("PODCAST_VOICES_FILE", ""),
            output_dir=env.get("PODCAST_OUTPUT_DIR", OUTPUT_DIR),
            retry_base_delay=_float_setting(env, "PODCAST_RETRY_BASE_DELAY", RETRY_BASE_DELAY),
            line_delay=_float_setting(env, "PODCAST_LINE_DELAY", LINE_DELAY),
        )

    def validate(self) -> None:
        """Raise ConfigurationError if the settings can't produce a working job."""
        if self.tts_backend not in TTS_BACKENDS:
            raise ConfigurationError(
                f"Unknown TTS backend {self.tts_backend!r} (expected one of {', '.join(TTS_BACKENDS)})"
            )
        if self.store not in STORE_BACKENDS:
            raise ConfigurationError(
                f"Unknown store {self.store!r} (expected one of {', '.join(STORE_BACKENDS)})"
            )
        if self.tts_backend == "elevenlabs" and not self.elevenlabs_api_key:
            raise ConfigurationError("ELEVEN_LABS_API_KEY is required for the elevenlabs backend")
        if self.store == "aws":
            missing = [
                name for name, value in (
                    ("ACCESS_KEY_ID", self.access_key_id),
                    ("SECRET_ACCESS_KEY", self.secret_access_key),
                    ("S3_BUCKET_NAME", self.bucket),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(f"Missing AWS settings: {', '.join(missing)}")
        if self.retry_max_attempts < 1:
            raise ConfigurationError("retry_max_attempts must be at least 1")

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.retry_max_attempts, base_delay=self.retry_base_delay)


def build_provider(settings: Settings):
    if settings.tts_backend == "elevenlabs":
        return ElevenLabsProvider(api_key=settings.elevenlabs_api_key)
    return EdgeTTSProvider()


def build_stores(settings: Settings):
    """Return (object_store, metadata_store) for the configured backend."""
    if settings.store == "local":
        return LocalObjectStore(settings.output_dir), LocalMetadataStore(settings.output_dir)
    session = aioboto3.Session(
        aws_access_key_id=settings.access_key_id,
        aws_secret_access_key=settings.secret_access_key,
        region_name=settings.region,
    )
    return S3ObjectStore(session, settings.bucket), DynamoMetadataStore(session, settings.table_name)


def build_voice_profile(settings: Settings) -> VoiceProfile:
    return load_voice_profile(settings.tts_backend, settings.voices_file or None)


def build_orchestrator(settings: Settings) -> Orchestrator:
    """Validate settings and wire an Orchestrator. Raises ConfigurationError."""
    settings.validate()
    voices = build_voice_profile(settings)
    tts_client = TTSClient(
        build_provider(settings),
        voices,
        retry_policy=settings.retry_policy,
        line_delay=settings.line_delay,
    )
    object_store, metadata_store = build_stores(settings)
    gateway = PersistenceGateway(object_store, metadata_store, retry_policy=settings.retry_policy)
    return Orchestrator(tts_client, gateway)
