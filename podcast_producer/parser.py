"""Parse a dialogue script into speaker-attributed lines."""

import re

from podcast_producer.models import DialogLine

# "Lucas: Hallo." / "**Lucas:** Hallo." / "*Lucas*: Hallo."
_LINE_RE = re.compile(r"^\s*([*_]*)\s*([^:*_][^:]*?)\s*([*_]*)\s*:(.*)$")


def parse_line(line: str) -> tuple[str, str] | None:
    """Split one script line into (speaker, text), or None if it doesn't match.

    Emphasis wrapping the speaker label is removed. Emphasis in the spoken
    text is kept as written, so "Lucas: *zucht* Nou." keeps its asterisks.
    """
    match = _LINE_RE.match(line)
    if not match:
        return None
    opening, speaker, closing, text = match.groups()
    text = text.strip()
    # "**Lucas:**": the label's closing run sits after the colon
    if opening and not closing and text.startswith(opening[::-1]):
        text = text[len(opening):].strip()
    speaker = speaker.strip()
    if not speaker or not text:
        return None
    return speaker, text


def parse_script(text: str) -> list[DialogLine]:
    """Parse script text into an ordered list of DialogLines.

    Blank and malformed lines are skipped. Indices are assigned to matching
    lines only, so they are contiguous from 0.
    """
    lines = []
    for raw in text.splitlines():
        parsed = parse_line(raw)
        if parsed is None:
            continue
        speaker, utterance = parsed
        lines.append(DialogLine(index=len(lines), speaker=speaker, text=utterance))
    return lines
