import asyncio

import pytest
from google.api_core import exceptions as google_exceptions

from conftest import VALID_FEEDBACK
from services.errors import ConfigurationError, UpstreamServiceError
from services.feedback_generator import (
    FALLBACK_FEEDBACK,
    TEXT_ONLY_NOTE,
    FeedbackGenerator,
    build_audio_prompt,
    build_text_prompt,
)


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    def __init__(self, text=VALID_FEEDBACK, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, prompt, generation_config=None, request_options=None):
        self.calls.append({"prompt": prompt, "config": generation_config, "options": request_options})
        if self.error:
            raise self.error
        return FakeResponse(self.text)


def test_generate_feedback_returns_model_text():
    model = FakeModel(text="  " + VALID_FEEDBACK + "\n")
    generator = FeedbackGenerator(api_key="test-key", model=model)

    raw = asyncio.run(generator.generate_feedback("prompt text"))

    assert raw == VALID_FEEDBACK
    assert model.calls[0]["prompt"] == "prompt text"
    assert model.calls[0]["options"]["timeout"] > 0


def test_generate_feedback_requires_api_key():
    model = FakeModel()
    generator = FeedbackGenerator(api_key="", model=model)

    with pytest.raises(ConfigurationError) as excinfo:
        asyncio.run(generator.generate_feedback("prompt"))

    assert excinfo.value.setting == "GEMINI_API_KEY"
    assert model.calls == []


def test_service_errors_keep_their_status():
    generator = FeedbackGenerator(api_key="k", model=FakeModel(error=google_exceptions.TooManyRequests("Quota exceeded")))

    with pytest.raises(UpstreamServiceError) as excinfo:
        asyncio.run(generator.generate_feedback("prompt"))

    assert excinfo.value.status_code == 429
    assert excinfo.value.message == "Quota exceeded"
    assert excinfo.value.service == "Gemini"


def test_deadline_is_a_generic_upstream_failure():
    generator = FeedbackGenerator(api_key="k", model=FakeModel(error=google_exceptions.DeadlineExceeded("slow")))

    with pytest.raises(UpstreamServiceError) as excinfo:
        asyncio.run(generator.generate_feedback("prompt"))

    assert excinfo.value.status_code is None


def test_parse_feedback_accepts_valid_document():
    generator = FeedbackGenerator(api_key="k", model=FakeModel())

    parsed = generator.parse_feedback(VALID_FEEDBACK)

    assert parsed["overallBand"] == 6.5
    assert parsed["scores"]["pronunciation"] == 7.0


def test_parse_feedback_strips_markdown_fences():
    generator = FeedbackGenerator(api_key="k", model=FakeModel())

    parsed = generator.parse_feedback("```json\n" + VALID_FEEDBACK + "\n```")

    assert parsed["overallBand"] == 6.5


@pytest.mark.parametrize("raw", [
    VALID_FEEDBACK[:40],
    "",
    "not json at all",
    "[1, 2, 3]",
    "{}",
    '{"overallBand": 6, "scores": "high"}',
])
def test_unusable_output_becomes_fallback(raw):
    generator = FeedbackGenerator(api_key="k", model=FakeModel())

    parsed = generator.parse_feedback(raw)

    assert parsed == FALLBACK_FEEDBACK
    assert parsed["feedback"]["error"] is True
    assert all(score == 0 for score in parsed["scores"].values())


def test_fallback_is_a_fresh_copy():
    generator = FeedbackGenerator(api_key="k", model=FakeModel())

    first = generator.parse_feedback("oops")
    first["scores"]["pronunciation"] = 9

    assert generator.parse_feedback("oops")["scores"]["pronunciation"] == 0


def test_audio_prompt_embeds_question_metrics_and_transcript():
    prompt = build_audio_prompt("Describe a festival", "2", "SPEECH METRICS block", "we celebrate")

    assert prompt.startswith('IELTS Speaking Part 2 Question: "Describe a festival"')
    assert "SPEECH METRICS block" in prompt
    assert 'TRANSCRIPT OF RESPONSE:\n"we celebrate"' in prompt
    assert TEXT_ONLY_NOTE not in prompt


def test_text_prompt_has_pronunciation_note_and_no_metrics():
    prompt = build_text_prompt("Do you like reading?", "1", "Yes I do")

    assert TEXT_ONLY_NOTE in prompt
    assert "SPEECH METRICS" not in prompt
    assert '"Yes I do"' in prompt
