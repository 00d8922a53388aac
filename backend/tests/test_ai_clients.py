"""AI service clients against mocked HTTP transports."""

import json

import httpx
import pytest
from anthropic import AsyncAnthropic
from tenacity import wait_none

from vidforge.services.ai_clients import (
    AIClientConnectionError,
    AIClientResponseError,
    AIClientTimeoutError,
    ClaudeClient,
    InferenceClient,
    SpeechClient,
    WhisperClient,
)
from vidforge.services.ai_clients import whisper_client
from vidforge.services.ai_clients.claude_client import fit_script


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    for method in (
        InferenceClient._post_detect,
        SpeechClient._post_speech,
        WhisperClient._post_transcription,
    ):
        monkeypatch.setattr(method.retry, "wait", wait_none())


@pytest.fixture
def frame(tmp_path):
    path = tmp_path / "keyframe.jpg"
    path.write_bytes(b"\xff\xd8jpeg")
    return path


class TestInferenceClient:
    async def test_detect_posts_image_and_filters(self, frame):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, request.read()))
            return httpx.Response(200, json={"detections": [
                {"label": "face", "score": 0.92, "x": 10, "y": 20, "width": 30, "height": 40},
                {"label": "face", "score": 0.2, "x": 0, "y": 0, "width": 5, "height": 5},
                {"label": "dog", "score": 0.99, "x": 1, "y": 2, "width": 3, "height": 4},
            ]})

        client = InferenceClient("http://inference.test/")
        client.http_client = _mock_client(handler)

        detections = await client.detect(frame, labels=["face"], min_score=0.5)

        assert [d.box for d in detections] == [(10, 20, 30, 40)]
        method, path, body = seen[0]
        assert (method, path) == ("POST", "/v1/detect")
        assert b'name="image"; filename="keyframe.jpg"' in body

    async def test_error_status_is_response_error(self, frame):
        client = InferenceClient("http://inference.test")
        client.http_client = _mock_client(lambda request: httpx.Response(503, text="busy"))

        with pytest.raises(AIClientResponseError) as exc_info:
            await client.detect(frame)

        assert exc_info.value.status_code == 503
        assert exc_info.value.provider == "inference"

    async def test_timeout_retried_then_translated(self, frame):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise httpx.ReadTimeout("no answer", request=request)

        client = InferenceClient("http://inference.test")
        client.http_client = _mock_client(handler)

        with pytest.raises(AIClientTimeoutError):
            await client.detect(frame)

        assert len(attempts) == 3

    async def test_health_check(self):
        client = InferenceClient("http://inference.test")
        client.http_client = _mock_client(lambda request: httpx.Response(200))
        assert await client.check_health() is True

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client.http_client = _mock_client(refuse)
        assert await client.check_health() is False


class TestSpeechClient:
    async def test_synthesize_writes_audio(self, tmp_path):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/audio/speech"
            bodies.append(json.loads(request.read()))
            return httpx.Response(200, content=b"ID3audio")

        client = SpeechClient("http://speech.test", default_voice="alloy")
        client.http_client = _mock_client(handler)
        output = tmp_path / "01_out.narration.mp3"

        await client.synthesize("Welcome back", output)
        await client.synthesize("Bye", output, voice="nova")

        assert output.read_bytes() == b"ID3audio"
        assert bodies == [
            {"input": "Welcome back", "voice": "alloy", "response_format": "mp3"},
            {"input": "Bye", "voice": "nova", "response_format": "mp3"},
        ]

    async def test_connection_failure_is_translated(self, tmp_path):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = SpeechClient("http://speech.test")
        client.http_client = _mock_client(refuse)
        output = tmp_path / "narration.mp3"

        with pytest.raises(AIClientConnectionError):
            await client.synthesize("Hello", output)

        assert not output.exists()


class TestWhisperClient:
    @pytest.fixture
    def mock_sync_http(self, monkeypatch):
        """Route the threaded upload client through a MockTransport handler."""
        real_client = httpx.Client

        def install(handler):
            monkeypatch.setattr(
                whisper_client.httpx,
                "Client",
                lambda timeout=None: real_client(transport=httpx.MockTransport(handler), timeout=timeout),
            )

        return install

    async def test_transcribe_uploads_file_with_language(self, tmp_path, mock_sync_http):
        audio = tmp_path / "audio.mp3"
        audio.write_bytes(b"mp3")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, request.read()))
            return httpx.Response(200, json={
                "text": "Hello there",
                "segments": [{"start": 0.0, "end": 1.2, "text": "Hello there"}],
            })

        mock_sync_http(handler)
        client = WhisperClient("http://whisper.test/", default_language="de")

        result = await client.transcribe(audio)

        assert result["segments"][0]["text"] == "Hello there"
        path, body = seen[0]
        assert path == "/v1/audio/transcriptions"
        assert b'name="language"\r\n\r\nde' in body
        assert b'name="response_format"\r\n\r\nverbose_json' in body
        assert b'filename="audio.mp3"' in body

    async def test_error_status_is_response_error(self, tmp_path, mock_sync_http):
        audio = tmp_path / "audio.mp3"
        audio.write_bytes(b"mp3")
        mock_sync_http(lambda request: httpx.Response(500, text="model crashed"))

        with pytest.raises(AIClientResponseError) as exc_info:
            await WhisperClient("http://whisper.test").transcribe(audio, language="en")

        assert exc_info.value.status_code == 500
        assert exc_info.value.response_body == "model crashed"

    async def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            await WhisperClient("http://whisper.test").transcribe(tmp_path / "gone.mp3")


def _message_response(text: str) -> dict:
    return {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-5",
        "content": [{"type": "text", "text": text}],
        "stop_reason": "end_turn",
        "stop_sequence": None,
        "usage": {"input_tokens": 12, "output_tokens": 30},
    }


class TestClaudeClient:
    @staticmethod
    def _writer(handler, max_words: int = 120) -> ClaudeClient:
        writer = ClaudeClient(api_key="test-key", max_words=max_words)
        writer.client = AsyncAnthropic(
            api_key="test-key", http_client=_mock_client(handler), max_retries=0
        )
        return writer

    async def test_write_script_sends_brief_with_budget(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/messages"
            bodies.append(json.loads(request.read()))
            return httpx.Response(200, json=_message_response("# Intro\n[music] Sleep *better* tonight."))

        writer = self._writer(handler, max_words=80)

        script = await writer.write_script("Three tips for better sleep")

        assert script == "Sleep better tonight."
        body = bodies[0]
        assert body["messages"] == [{"role": "user", "content": "Three tips for better sleep"}]
        assert body["max_tokens"] == 160
        assert "under 80 words" in body["system"]

    async def test_explicit_budget_overrides_default(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.read()))
            return httpx.Response(200, json=_message_response("One. Two. Three. Four."))

        script = await self._writer(handler).write_script("count", max_words=3)

        assert script == "One. Two. Three."
        assert bodies[0]["max_tokens"] == 6

    async def test_api_error_is_response_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                500, json={"type": "error", "error": {"type": "api_error", "message": "overloaded"}}
            )

        with pytest.raises(AIClientResponseError) as exc_info:
            await self._writer(handler).write_script("brief")

        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "claude"

    async def test_timeout_is_translated(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("no answer", request=request)

        with pytest.raises(AIClientTimeoutError):
            await self._writer(handler).write_script("brief")

    def test_missing_api_key_rejected(self):
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            ClaudeClient(api_key="")


class TestFitScript:
    def test_strips_directions_and_markup(self):
        raw = "## Hook\n**Tired** of (sigh) waking up tired?\n[upbeat music]\nTry_this."

        assert fit_script(raw, 50) == "Tired of waking up tired? Try this."

    def test_cuts_at_last_sentence_inside_budget(self):
        raw = "We sleep badly. Here is why. Keep reading because the rest matters"

        assert fit_script(raw, 8) == "We sleep badly. Here is why."

    def test_hard_cut_without_sentence_end(self):
        assert fit_script("one two three four five six", 4) == "one two three four"
