"""Exception hierarchy for the generation pipeline."""


class PodcastProducerError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PodcastProducerError):
    """Missing or inconsistent settings, detected before a job starts."""


class ProviderError(PodcastProducerError):
    pass


class AuthProviderError(ProviderError):
    """The TTS provider rejected our credentials. Never retried."""


class TransientProviderError(ProviderError):
    """Timeout, rate limit, 5xx or an empty payload. Retried with backoff."""


class TransientStorageError(PodcastProducerError):
    """Object storage or metadata store call failed. Retried with backoff."""


class NoSegmentsError(PodcastProducerError):
    """Every line was skipped or failed, so there is nothing to upload."""


class UploadError(PodcastProducerError):
    """Upload still failing after all retries."""


class MetadataUpdateError(PodcastProducerError):
    """Content record update still failing after all retries."""
