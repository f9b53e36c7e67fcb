import asyncio
import json

import httpx
import pytest

from services.errors import ConfigurationError, UpstreamServiceError
from services.transcription import TranscriptionService

AUDIO = b"\x1aE\xdf\xa3\x00\xff\r\n--webm"

COMPLETED = {
    "id": "tr_1",
    "status": "completed",
    "text": "Um I live in Lisbon",
    "audio_duration": 4,
    "words": [
        {"text": "Um", "start": 0, "end": 300, "confidence": 0.9},
        {"text": "I", "start": 800, "end": 900, "confidence": 0.99},
        {"text": "live", "start": 900, "end": 1200, "confidence": 0.98},
        {"text": "in", "start": 1200, "end": 1300, "confidence": 0.97},
        {"text": "Lisbon", "start": 1400, "end": 1900, "confidence": 0.95},
    ],
}


def make_service(handler, api_key="test-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    service = TranscriptionService(api_key=api_key, client=client)
    service.poll_interval = 0
    return service


def assemblyai_handler(polls, seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/upload"):
            return httpx.Response(200, json={"upload_url": "https://cdn.example/audio"})
        if request.method == "POST" and request.url.path.endswith("/transcript"):
            return httpx.Response(200, json={"id": "tr_1", "status": "queued"})
        return httpx.Response(200, json=polls.pop(0))
    return handler


def test_transcribe_uploads_submits_and_polls():
    seen = []
    service = make_service(assemblyai_handler([{"status": "processing"}, COMPLETED], seen))

    result = asyncio.run(service.transcribe(AUDIO, "answer.webm"))

    assert result.text == "Um I live in Lisbon"
    assert result.duration == 4.0
    assert [w.text for w in result.words] == ["Um", "I", "live", "in", "Lisbon"]
    assert result.words[1].start == pytest.approx(0.8)
    assert result.words[4].end == pytest.approx(1.9)

    upload, submit, *polls = seen
    assert upload.content == AUDIO
    assert upload.headers["authorization"] == "test-key"
    assert json.loads(submit.content) == {"audio_url": "https://cdn.example/audio", "disfluencies": True}
    assert len(polls) == 2


def test_missing_api_key_is_a_configuration_error():
    seen = []
    service = make_service(assemblyai_handler([], seen), api_key="")

    with pytest.raises(ConfigurationError) as excinfo:
        asyncio.run(service.transcribe(AUDIO))

    assert excinfo.value.setting == "ASSEMBLYAI_API_KEY"
    assert seen == []


def test_http_error_keeps_status_and_message():
    def handler(request):
        return httpx.Response(401, json={"error": "Invalid API key"})

    service = make_service(handler)

    with pytest.raises(UpstreamServiceError) as excinfo:
        asyncio.run(service.transcribe(AUDIO))

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Invalid API key"


def test_failed_job_has_no_status_code():
    seen = []
    service = make_service(assemblyai_handler([{"status": "error", "error": "Audio is silent"}], seen))

    with pytest.raises(UpstreamServiceError) as excinfo:
        asyncio.run(service.transcribe(AUDIO))

    assert "Audio is silent" in excinfo.value.message
    assert excinfo.value.status_code is None


def test_polling_gives_up_after_max_polls():
    seen = []
    service = make_service(assemblyai_handler([{"status": "processing"}] * 3, seen))
    service.max_polls = 3

    with pytest.raises(UpstreamServiceError) as excinfo:
        asyncio.run(service.transcribe(AUDIO))

    assert "timeout" in excinfo.value.message.lower()


def test_transport_timeout_is_an_upstream_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    service = make_service(handler)

    with pytest.raises(UpstreamServiceError) as excinfo:
        asyncio.run(service.transcribe(AUDIO))

    assert excinfo.value.status_code is None


def test_malformed_words_are_dropped():
    service = make_service(lambda request: httpx.Response(200))

    result = service.parse_transcription_result({
        "text": "a b c",
        "words": [
            {"text": "a", "start": 0, "end": 100},
            {"text": "b", "start": None, "end": 200},
            {"text": "c", "start": 900, "end": 300},
            {"start": 1000, "end": 1100},
        ],
    })

    assert [w.text for w in result.words] == ["a"]
    assert result.duration is None
