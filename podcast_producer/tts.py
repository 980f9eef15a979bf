"""TTS generation with retry logic and per-speaker continuity tokens."""

import asyncio
import logging
from collections import deque
from typing import Protocol

import aiohttp
import edge_tts

from podcast_producer.constants import (
    CONTINUITY_CAPACITY,
    EDGE_TTS_RATE,
    ELEVENLABS_API_URL,
    ELEVENLABS_MODEL_ID,
    ELEVENLABS_OUTPUT_FORMAT,
    ELEVENLABS_TIMEOUT,
    LINE_DELAY,
)
from podcast_producer.errors import AuthProviderError, TransientProviderError
from podcast_producer.models import AudioSegment, DialogLine, SynthesisResult
from podcast_producer.retry import RetryPolicy, retry_with_backoff
from podcast_producer.voices import VoiceProfile

logger = logging.getLogger(__name__)


class TTSProvider(Protocol):
    async def synthesize(
        self, voice_id: str, text: str, previous_tokens: list[str],
    ) -> SynthesisResult:
        ...


async def _error_body(response) -> str:
    # Error bodies are informational and not always UTF-8
    try:
        raw = await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError):
        return ""
    return raw.decode("utf-8", errors="replace")


class ElevenLabsProvider:
    """ElevenLabs text-to-speech over HTTP.

    The `request-id` response header is the continuity token; sending the
    previous ids for a speaker keeps prosody consistent across lines.
    """

    def __init__(
        self,
        api_key: str,
        model_id: str = ELEVENLABS_MODEL_ID,
        output_format: str = ELEVENLABS_OUTPUT_FORMAT,
        base_url: str = ELEVENLABS_API_URL,
        timeout: float = ELEVENLABS_TIMEOUT,
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.output_format = output_format
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _payload(self, text: str, previous_tokens: list[str]) -> dict:
        payload = {"text": text, "model_id": self.model_id}
        if previous_tokens:
            payload["previous_request_ids"] = list(previous_tokens)
        return payload

    async def synthesize(
        self, voice_id: str, text: str, previous_tokens: list[str],
    ) -> SynthesisResult:
        url = f"{self.base_url}/text-to-speech/{voice_id}"
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    url,
                    json=self._payload(text, previous_tokens),
                    headers=headers,
                    params={"output_format": self.output_format},
                ) as response:
                    if response.status in (401, 403):
                        body = await _error_body(response)
                        raise AuthProviderError(
                            f"ElevenLabs rejected credentials ({response.status}): {body[:200]}"
                        )
                    if response.status != 200:
                        body = await _error_body(response)
                        raise TransientProviderError(
                            f"ElevenLabs error {response.status}: {body[:200]}"
                        )
                    audio = await response.read()
                    token = response.headers.get("request-id")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientProviderError(f"ElevenLabs request failed: {e!r}") from e

        if not audio:
            raise TransientProviderError(f"ElevenLabs returned 0 bytes for: {text[:50]}...")
        return SynthesisResult(audio=audio, continuity_token=token)


class EdgeTTSProvider:
    """Credential-free backend via edge-tts. Has no continuity tokens."""

    def __init__(self, rate: str = EDGE_TTS_RATE):
        self.rate = rate

    async def synthesize(
        self, voice_id: str, text: str, previous_tokens: list[str],
    ) -> SynthesisResult:
        chunks = []
        try:
            communicate = edge_tts.Communicate(text, voice_id, rate=self.rate)
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    chunks.append(chunk["data"])
        except Exception as e:
            raise TransientProviderError(f"edge-tts failed: {e!r}") from e

        audio = b"".join(chunks)
        # 0-byte output counts as failure
        if not audio:
            raise TransientProviderError(f"edge-tts produced 0 bytes for: {text[:50]}...")
        return SynthesisResult(audio=audio)


class ContinuityState:
    """Bounded FIFO of recent continuity tokens per speaker (case-insensitive), for one job."""

    def __init__(self, capacity: int = CONTINUITY_CAPACITY):
        self.capacity = capacity
        self._history: dict[str, deque[str]] = {}

    def previous(self, speaker: str) -> list[str]:
        return list(self._history.get(speaker.lower(), ()))

    def record(self, speaker: str, token: str | None) -> None:
        if not token:
            return
        history = self._history.setdefault(speaker.lower(), deque(maxlen=self.capacity))
        history.append(token)


def is_retryable_provider_error(error: Exception) -> bool:
    return not isinstance(error, AuthProviderError)


class TTSClient:
    """Turns dialogue lines into audio segments, one provider call at a time."""

    def __init__(
        self,
        provider: TTSProvider,
        voices: VoiceProfile,
        retry_policy: RetryPolicy | None = None,
        line_delay: float = LINE_DELAY,
    ):
        self.provider = provider
        self.voices = voices
        self.retry_policy = retry_policy or RetryPolicy()
        self.line_delay = line_delay

    async def generate_single(
        self, line: DialogLine, voice_id: str, continuity: ContinuityState,
    ) -> AudioSegment:
        """Synthesize one line with retry. AuthProviderError is never retried."""
        previous = continuity.previous(line.speaker)

        async def call() -> SynthesisResult:
            return await self.provider.synthesize(voice_id, line.text, previous)

        result = await retry_with_backoff(
            call,
            max_attempts=self.retry_policy.max_attempts,
            is_retryable=is_retryable_provider_error,
            delays=self.retry_policy.delays(),
            description=f"TTS line {line.index} ({line.speaker})",
        )
        continuity.record(line.speaker, result.continuity_token)
        return AudioSegment(index=line.index, audio=result.audio)

    async def generate_tts(self, lines: list[DialogLine]) -> tuple[list[AudioSegment], int]:
        """Generate segments for all lines in script order.

        Returns (segments, skipped_count). Lines with an unknown speaker or
        exhausted retries are skipped; AuthProviderError aborts the loop.
        """
        continuity = ContinuityState()
        segments = []
        skipped = 0
        total = len(lines)

        for position, line in enumerate(lines):
            if position > 0 and self.line_delay > 0:
                await asyncio.sleep(self.line_delay)

            voice_id = self.voices.resolve(line.speaker)
            if voice_id is None:
                logger.warning(
                    "Skipping line %d: no voice configured for speaker %r",
                    line.index, line.speaker,
                )
                skipped += 1
                continue

            logger.info("Generating line %d/%d (%s)", position + 1, total, line.speaker)
            try:
                segment = await self.generate_single(line, voice_id, continuity)
            except TransientProviderError as e:
                logger.warning("Skipping line %d after retries: %s", line.index, e)
                skipped += 1
                continue
            segments.append(segment)

        return segments, skipped
