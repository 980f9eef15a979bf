"""All magic numbers and configuration constants."""

RETRY_MAX_ATTEMPTS = 3              # total attempts per provider/storage call
RETRY_BASE_DELAY = 2.0              # seconds - first backoff delay, doubles per retry
LINE_DELAY = 0.5                    # seconds - pause between lines to respect rate limits
CONTINUITY_CAPACITY = 3             # previous request ids sent per speaker
ELEVENLABS_API_URL = "https://api.elevenlabs.io/v1"
ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"
ELEVENLABS_OUTPUT_FORMAT = "mp3_44100_128"
ELEVENLABS_TIMEOUT = 60.0           # seconds - per request
EDGE_TTS_RATE = "+0%"               # edge-tts relative speech rate
AUDIO_CONTENT_TYPE = "audio/mpeg"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
AUDIO_PREFIX = "audio"              # object key namespace for generated audio
TRANSCRIPT_PREFIX = "transcripts"
DESCRIPTION_PREFIX = "descriptions"
DEFAULT_TABLE_NAME = "LucasLeestBooks"
DEFAULT_REGION = "eu-west-1"
OUTPUT_DIR = "output"               # local object store / metadata root
VERSION = "0.1.0"

# Hosts of the show, keyed by speaker name as it appears in scripts
ELEVENLABS_VOICES = {
    "Lucas": "TX3LPaxmHKxFdv7VOQHJ",
    "Betsie": "21m00Tcm4TlvDq8ikWAM",
}
EDGE_VOICES = {
    "Lucas": "nl-NL-MaartenNeural",
    "Betsie": "nl-NL-FennaNeural",
}
