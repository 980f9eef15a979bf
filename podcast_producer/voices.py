"""Speaker → voice id resolution from static configuration."""

import json
import logging
import os

from podcast_producer.constants import EDGE_VOICES, ELEVENLABS_VOICES
from podcast_producer.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_VOICES = {
    "elevenlabs": ELEVENLABS_VOICES,
    "edge": EDGE_VOICES,
}


class VoiceProfile:
    """Immutable speaker → voice id mapping. Lookups ignore case."""

    def __init__(self, voices: dict[str, str]):
        self._voices = {name.strip().lower(): voice for name, voice in voices.items() if voice}
        self._names = {name.strip().lower(): name.strip() for name in voices}

    def resolve(self, speaker: str) -> str | None:
        """Return the voice id for speaker, or None if unknown."""
        return self._voices.get(speaker.strip().lower())

    def items(self) -> list[tuple[str, str]]:
        return [(self._names[key], voice) for key, voice in sorted(self._voices.items())]

    def __contains__(self, speaker: str) -> bool:
        return self.resolve(speaker) is not None

    def __len__(self) -> int:
        return len(self._voices)


def load_voices_file(path: str) -> dict[str, str]:
    """Load a voices JSON file: {"voices": {"Lucas": "<voice id>", ...}}.

    A flat {"Lucas": "<voice id>"} mapping is accepted too.
    """
    if not os.path.exists(path):
        raise ConfigurationError(f"Voices file not found: {path}")
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Malformed voices file {path}: {e}") from e

    voices = data.get("voices", data) if isinstance(data, dict) else None
    if not isinstance(voices, dict) or not all(isinstance(v, str) for v in voices.values()):
        raise ConfigurationError(f"Voices file {path} must map speaker names to voice ids")
    return voices


def load_voice_profile(backend: str, voices_file: str | None = None) -> VoiceProfile:
    """Build the VoiceProfile for a backend.

    Priority: voices file → built-in defaults for the backend.
    """
    if voices_file:
        voices = load_voices_file(voices_file)
        logger.info("Loaded %d voices from %s", len(voices), voices_file)
        return VoiceProfile(voices)
    if backend not in DEFAULT_VOICES:
        raise ConfigurationError(f"No default voices for TTS backend: {backend}")
    return VoiceProfile(DEFAULT_VOICES[backend])
