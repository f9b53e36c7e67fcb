from typing import Dict, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

import main
from models import TimedWord, TranscriptionResult

BOUNDARY = "----ieltsBoundary7MA4YWxkTrZu0gW"

VALID_FEEDBACK = (
    '{"overallBand": 6.5, "scores": {"fluencyCoherence": 6.5, "lexicalResource": 6.5, '
    '"grammaticalRange": 6.0, "pronunciation": 7.0}, "feedback": {"summary": "Solid answer."}}'
)


def encode_multipart(fields: Dict[str, str],
                     files: Optional[Dict[str, Tuple[str, bytes, str]]] = None,
                     boundary: str = BOUNDARY) -> bytes:
    """Build a multipart/form-data body the way a browser would"""
    delimiter = f"--{boundary}".encode("latin-1")
    chunks = []
    for name, value in fields.items():
        chunks.append(delimiter + b"\r\n")
        chunks.append(f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode("latin-1"))
        chunks.append(value.encode("utf-8") + b"\r\n")
    for name, (filename, data, content_type) in (files or {}).items():
        chunks.append(delimiter + b"\r\n")
        chunks.append(
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n".encode("latin-1")
        )
        chunks.append(data + b"\r\n")
    chunks.append(delimiter + b"--\r\n")
    return b"".join(chunks)


def multipart_headers(boundary: str = BOUNDARY) -> Dict[str, str]:
    return {"content-type": f"multipart/form-data; boundary={boundary}"}


def words(*triples):
    return [TimedWord(text=text, start=start, end=end) for text, start, end in triples]


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def fake_collaborators(monkeypatch):
    """Replace AssemblyAI and Gemini calls with in-memory fakes.

    Returns a dict that records what the fakes received and lets tests
    choose what they answer.
    """
    state = {
        "transcription": TranscriptionResult(
            text="the quick brown",
            words=words(("the", 0.0, 0.1), ("quick", 0.1, 0.2), ("brown", 0.9, 1.0)),
            duration=10.0,
        ),
        "feedback": VALID_FEEDBACK,
        "audio": None,
        "prompts": [],
    }

    async def fake_transcribe(audio, filename="audio"):
        state["audio"] = audio
        return state["transcription"]

    async def fake_generate(prompt):
        state["prompts"].append(prompt)
        return state["feedback"]

    monkeypatch.setattr(main.transcription_service, "transcribe", fake_transcribe)
    monkeypatch.setattr(main.feedback_generator, "generate_feedback", fake_generate)
    return state
