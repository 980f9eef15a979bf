"""Concatenate generated segments into one audio artifact."""

from podcast_producer.models import AudioSegment


def assemble(segments: list[AudioSegment]) -> bytes:
    """Join segment bytes in line order.

    Raw concatenation only: MP3 frames are self-delimiting, so the result
    plays back as one stream without re-encoding. Skipped lines leave no gap.
    """
    ordered = sorted(segments, key=lambda seg: seg.index)
    return b"".join(seg.audio for seg in ordered)
