"""Tests for TTS module: providers, continuity tracking, the line loop."""

import asyncio
from unittest.mock import patch, AsyncMock, MagicMock

import aiohttp
import pytest

from podcast_producer.errors import AuthProviderError, TransientProviderError
from podcast_producer.models import DialogLine
from podcast_producer.parser import parse_script
from podcast_producer.retry import RetryPolicy
from podcast_producer.tts import ContinuityState, EdgeTTSProvider, ElevenLabsProvider, TTSClient

from conftest import FakeProvider, audio_for


def _client(provider, voices, policy=None, line_delay=0):
    return TTSClient(provider, voices, retry_policy=policy or RetryPolicy(base_delay=0.0), line_delay=line_delay)


# --- ContinuityState ---

def test_continuity_empty_for_new_speaker():
    state = ContinuityState()
    assert state.previous("Lucas") == []


def test_continuity_evicts_oldest_past_capacity():
    state = ContinuityState(capacity=3)
    for token in ["a", "b", "c", "d"]:
        state.record("Lucas", token)
    assert state.previous("Lucas") == ["b", "c", "d"]


def test_continuity_is_per_speaker():
    state = ContinuityState()
    state.record("Lucas", "a")
    state.record("Betsie", "b")
    assert state.previous("Lucas") == ["a"]
    assert state.previous("Betsie") == ["b"]


def test_continuity_ignores_missing_token():
    state = ContinuityState()
    state.record("Lucas", None)
    assert state.previous("Lucas") == []


def test_continuity_speaker_case_insensitive():
    state = ContinuityState()
    state.record("Lucas", "a")
    state.record("LUCAS", "b")
    assert state.previous("lucas") == ["a", "b"]


# --- TTSClient ---

def test_generate_in_script_order(voices):
    """Scenario A: two mapped speakers → two calls in order."""
    provider = FakeProvider()
    segments, skipped = asyncio.run(_client(provider, voices).generate_tts(
        parse_script("Lucas: Hallo.\nBetsie: Hoi.")
    ))
    assert [call[:2] for call in provider.calls] == [
        ("voice-lucas", "Hallo."),
        ("voice-betsie", "Hoi."),
    ]
    assert [s.index for s in segments] == [0, 1]
    assert [s.audio for s in segments] == [audio_for("Hallo."), audio_for("Hoi.")]
    assert skipped == 0


def test_continuity_tokens_per_speaker(voices):
    """Scenario B: 4th call carries tokens 1-3, 5th carries 2-4."""
    provider = FakeProvider()
    script = "\n".join(f"Lucas: Zin {i}." for i in range(1, 6))
    asyncio.run(_client(provider, voices).generate_tts(parse_script(script)))
    previous = [call[2] for call in provider.calls]
    assert previous[0] == []
    assert previous[3] == ["req-1", "req-2", "req-3"]
    assert previous[4] == ["req-2", "req-3", "req-4"]


def test_continuity_not_shared_between_speakers(voices):
    provider = FakeProvider()
    asyncio.run(_client(provider, voices).generate_tts(
        parse_script("Lucas: Een.\nBetsie: Twee.\nLucas: Drie.")
    ))
    previous = [call[2] for call in provider.calls]
    assert previous == [[], [], ["req-1"]]


def test_continuity_fresh_per_run(voices):
    """A second run of the same client starts with empty histories."""
    provider = FakeProvider()
    client = _client(provider, voices)
    asyncio.run(client.generate_tts(parse_script("Lucas: Een.")))
    asyncio.run(client.generate_tts(parse_script("Lucas: Twee.")))
    assert provider.calls[1][2] == []


def test_unknown_speaker_skipped(voices):
    provider = FakeProvider()
    segments, skipped = asyncio.run(_client(provider, voices).generate_tts(
        parse_script("Lucas: Hallo.\nVerteller: Ondertussen...\nBetsie: Hoi.")
    ))
    assert [call[1] for call in provider.calls] == ["Hallo.", "Hoi."]
    assert [s.index for s in segments] == [0, 2]
    assert skipped == 1


def test_retry_is_transparent(voices):
    """Two transient failures then success gives the same bytes as a clean call."""
    flaky = FakeProvider(failures={"Hoi.": ["transient", "transient"]})
    clean = FakeProvider()
    lines = parse_script("Betsie: Hoi.")
    flaky_segments, _ = asyncio.run(_client(flaky, voices).generate_tts(lines))
    clean_segments, _ = asyncio.run(_client(clean, voices).generate_tts(lines))
    assert len(flaky.calls) == 3
    assert flaky_segments[0].audio == clean_segments[0].audio


def test_auth_failure_aborts(voices):
    """Auth failure: one call for that line, none for later lines."""
    provider = FakeProvider(failures={"Hoi.": ["auth"]})
    lines = parse_script("Lucas: Hallo.\nBetsie: Hoi.\nLucas: Dag.")
    with pytest.raises(AuthProviderError):
        asyncio.run(_client(provider, voices).generate_tts(lines))
    assert [call[1] for call in provider.calls] == ["Hallo.", "Hoi."]


def test_exhausted_retries_skip_line(voices):
    provider = FakeProvider(failures={"Hoi.": ["transient"] * 3})
    segments, skipped = asyncio.run(_client(provider, voices).generate_tts(
        parse_script("Betsie: Hoi.\nLucas: Dag.")
    ))
    assert len(provider.calls) == 4
    assert [s.index for s in segments] == [1]
    assert skipped == 1


def test_failed_line_records_no_token(voices):
    provider = FakeProvider(failures={"Een.": ["transient"] * 3})
    asyncio.run(_client(provider, voices).generate_tts(
        parse_script("Lucas: Een.\nLucas: Twee.")
    ))
    assert provider.calls[-1][2] == []


def test_backoff_schedule(voices):
    """Retries wait base, then 2·base."""
    provider = FakeProvider(failures={"Hoi.": ["transient", "transient"]})
    client = _client(provider, voices, policy=RetryPolicy(max_attempts=3, base_delay=2.0))
    with patch("podcast_producer.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        asyncio.run(client.generate_tts(parse_script("Betsie: Hoi.")))
    assert [c.args[0] for c in mock_sleep.await_args_list] == [2.0, 4.0]


def test_line_delay_between_lines(voices):
    provider = FakeProvider()
    client = _client(provider, voices, line_delay=0.5)
    with patch("podcast_producer.tts.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        asyncio.run(client.generate_tts(
            parse_script("Lucas: Een.\nOnbekend: Twee.\nBetsie: Drie.")
        ))
    # Paced between every pair of lines, including around the skipped one
    assert [c.args[0] for c in mock_sleep.await_args_list] == [0.5, 0.5]


def test_no_lines_no_calls(voices):
    provider = FakeProvider()
    segments, skipped = asyncio.run(_client(provider, voices).generate_tts([]))
    assert segments == [] and skipped == 0
    assert provider.calls == []


# --- ElevenLabsProvider ---

def _mock_session(status, body=b"", headers=None):
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.read = AsyncMock(return_value=body)

    post_ctx = MagicMock()
    post_ctx.__aenter__.return_value = response
    post_ctx.__aexit__.return_value = False

    session = MagicMock()
    session.post.return_value = post_ctx

    session_ctx = MagicMock()
    session_ctx.__aenter__.return_value = session
    session_ctx.__aexit__.return_value = False
    return session_ctx, session


def test_elevenlabs_success():
    session_ctx, session = _mock_session(200, body=b"ID3audio", headers={"request-id": "req-9"})
    provider = ElevenLabsProvider(api_key="key")
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        result = asyncio.run(provider.synthesize("voice-1", "Hallo.", ["req-7", "req-8"]))

    assert result.audio == b"ID3audio"
    assert result.continuity_token == "req-9"
    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url.endswith("/text-to-speech/voice-1")
    assert kwargs["headers"]["xi-api-key"] == "key"
    assert kwargs["json"]["text"] == "Hallo."
    assert kwargs["json"]["previous_request_ids"] == ["req-7", "req-8"]


def test_elevenlabs_omits_empty_history():
    session_ctx, session = _mock_session(200, body=b"ID3audio")
    provider = ElevenLabsProvider(api_key="key")
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        result = asyncio.run(provider.synthesize("voice-1", "Hallo.", []))
    assert "previous_request_ids" not in session.post.call_args.kwargs["json"]
    assert result.continuity_token is None


@pytest.mark.parametrize("status", [401, 403])
def test_elevenlabs_auth_error(status):
    session_ctx, _ = _mock_session(status, body=b"invalid_api_key")
    provider = ElevenLabsProvider(api_key="bad")
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(AuthProviderError):
            asyncio.run(provider.synthesize("voice-1", "Hallo.", []))


@pytest.mark.parametrize("status", [429, 500, 503])
def test_elevenlabs_transient_status(status):
    session_ctx, _ = _mock_session(status, body=b"busy")
    provider = ElevenLabsProvider(api_key="key")
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(TransientProviderError):
            asyncio.run(provider.synthesize("voice-1", "Hallo.", []))


def test_elevenlabs_auth_error_with_undecodable_body(voices):
    """A 401 with a non-UTF-8 body is still one call and an auth failure."""
    session_ctx, session = _mock_session(401, body=b"\xff\xfe\x00denied")
    client = _client(ElevenLabsProvider(api_key="bad"), voices)
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(AuthProviderError, match="401"):
            asyncio.run(client.generate_tts(parse_script("Lucas: Hallo.\nBetsie: Hoi.")))
    assert session.post.call_count == 1


def test_elevenlabs_transient_error_with_undecodable_body():
    session_ctx, _ = _mock_session(502, body=b"\xff bad gateway")
    provider = ElevenLabsProvider(api_key="key")
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(TransientProviderError, match="bad gateway"):
            asyncio.run(provider.synthesize("voice-1", "Hallo.", []))


def test_elevenlabs_empty_body_is_transient():
    session_ctx, _ = _mock_session(200, body=b"")
    provider = ElevenLabsProvider(api_key="key")
    with patch("podcast_producer.tts.aiohttp.ClientSession", return_value=session_ctx):
        with pytest.raises(TransientProviderError, match="0 bytes"):
            asyncio.run(provider.synthesize("voice-1", "Hallo.", []))


def test_elevenlabs_connection_error_is_transient():
    provider = ElevenLabsProvider(api_key="key")
    with patch(
        "podcast_producer.tts.aiohttp.ClientSession",
        side_effect=aiohttp.ClientConnectionError("refused"),
    ):
        with pytest.raises(TransientProviderError):
            asyncio.run(provider.synthesize("voice-1", "Hallo.", []))


# --- EdgeTTSProvider ---

def _mock_communicate(chunks):
    def factory(text, voice, **kwargs):
        mock = MagicMock()

        async def stream():
            for chunk in chunks:
                yield chunk
        mock.stream = stream
        return mock
    return factory


@patch("podcast_producer.tts.edge_tts.Communicate")
def test_edge_collects_audio_chunks(mock_comm):
    mock_comm.side_effect = _mock_communicate([
        {"type": "audio", "data": b"abc"},
        {"type": "WordBoundary", "offset": 0},
        {"type": "audio", "data": b"def"},
    ])
    result = asyncio.run(EdgeTTSProvider().synthesize("nl-NL-FennaNeural", "Hoi.", ["ignored"]))
    assert result.audio == b"abcdef"
    assert result.continuity_token is None


@patch("podcast_producer.tts.edge_tts.Communicate")
def test_edge_empty_output_is_transient(mock_comm):
    mock_comm.side_effect = _mock_communicate([])
    with pytest.raises(TransientProviderError):
        asyncio.run(EdgeTTSProvider().synthesize("nl-NL-FennaNeural", "Hoi.", []))


@patch("podcast_producer.tts.edge_tts.Communicate")
def test_edge_network_error_is_transient(mock_comm):
    mock_comm.side_effect = ConnectionError("Network error")
    with pytest.raises(TransientProviderError):
        asyncio.run(EdgeTTSProvider().synthesize("nl-NL-FennaNeural", "Hoi.", []))
