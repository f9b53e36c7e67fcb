import json
import math
import uuid
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Config
from models import (
    AudioFeedbackRequest,
    ErrorResponse,
    FeedbackResponse,
    TextFeedbackRequest,
)
from services.errors import (
    ClientInputError,
    ConfigurationError,
    UpstreamServiceError,
)
from services.feedback_generator import FeedbackGenerator, build_audio_prompt, build_text_prompt
from services.multipart import decode_multipart
from services.speech_metrics import SpeechMetricsAnalyzer
from services.transcription import TranscriptionService

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

# Process-wide collaborator handles, built once and read-only afterwards
transcription_service = TranscriptionService()
feedback_generator = FeedbackGenerator()
metrics_analyzer = SpeechMetricsAnalyzer()

FEEDBACK_PATH = "/api/feedback"
FEEDBACK_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await transcription_service.aclose()


app = FastAPI(title="IELTS Speaking Feedback Service", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    response = await call_next(request)
    for header, value in Config.CORS_HEADERS.items():
        response.headers[header] = value
    return response


def error_response(status_code: int, error: str, details: Optional[str] = None,
                   status: Optional[int] = None, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details, status=status)
    return JSONResponse(status_code=status_code, content=body.to_payload(), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    # Methods outside FEEDBACK_METHODS never reach the route
    if exc.status_code == 405 and request.url.path == FEEDBACK_PATH:
        return error_response(405, "Method not allowed", headers={"Allow": "POST"})
    return await http_exception_handler(request, exc)


def check_content_length(request: Request) -> None:
    """Reject bodies whose declared size is over the limit before reading them"""
    declared = request.headers.get("content-length")
    if declared is None:
        return
    try:
        size = int(declared)
    except ValueError:
        return
    if size > Config.MAX_REQUEST_SIZE:
        raise ClientInputError("Request body too large", details=f"Maximum size is {Config.MAX_REQUEST_SIZE} bytes")


def _text_or_default(value: Any, default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def parse_duration(value: Optional[str]) -> Optional[float]:
    """Caller-declared duration in seconds, or None when absent or not a finite number"""
    if value is None:
        return None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return None
    return duration if math.isfinite(duration) else None


def choose_duration(declared: Optional[float], reported: Optional[float]) -> float:
    if declared is not None:
        return declared
    if reported is not None:
        return reported
    return 0.0


def parse_audio_request(content_type: str, body: bytes) -> AudioFeedbackRequest:
    form = decode_multipart(content_type, body)
    audio_file = form.files.get("audio")

    if audio_file is None:
        raise ClientInputError("No audio file provided")
    if len(audio_file.data) == 0:
        raise ClientInputError("Empty audio file")
    if len(audio_file.data) > Config.MAX_FILE_SIZE:
        raise ClientInputError("Audio file too large", details=f"Maximum size is {Config.MAX_FILE_SIZE} bytes")

    return AudioFeedbackRequest(
        audio=audio_file.data,
        filename=audio_file.filename or "audio",
        content_type=audio_file.content_type,
        question=_text_or_default(form.fields.get("question"), Config.DEFAULT_AUDIO_QUESTION),
        part=_text_or_default(form.fields.get("part"), Config.DEFAULT_PART),
        declared_duration=parse_duration(form.fields.get("duration")),
    )


def parse_text_request(body: bytes) -> TextFeedbackRequest:
    try:
        payload = json.loads(body) if body else {}
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ClientInputError("Missing transcript text or audio file")

    return TextFeedbackRequest(
        transcript=text.strip(),
        question=_text_or_default(payload.get("question"), Config.DEFAULT_TEXT_QUESTION),
        part=_text_or_default(payload.get("part"), Config.DEFAULT_PART),
    )


async def process_audio_feedback(feedback_request: AudioFeedbackRequest, request_id: str) -> FeedbackResponse:
    logging.info(
        f"[{request_id}] Processing audio file: {feedback_request.filename}, "
        f"size: {len(feedback_request.audio)} bytes"
    )

    # Step 1: transcribe with word-level timings
    transcription = await transcription_service.transcribe(feedback_request.audio, feedback_request.filename)
    duration = choose_duration(feedback_request.declared_duration, transcription.duration)
    logging.info(f"[{request_id}] Transcription complete. Words: {len(transcription.words)}, Duration: {duration}s")

    # Step 2: speech metrics
    metrics = metrics_analyzer.analyze(transcription.words, duration)
    logging.info(f"[{request_id}] Metrics: {metrics.model_dump(by_alias=True)}")

    # Step 3: band scores and feedback
    metrics_block = metrics_analyzer.render_block(metrics, len(transcription.words), duration)
    prompt = build_audio_prompt(feedback_request.question, feedback_request.part, metrics_block, transcription.text)
    raw_feedback = await feedback_generator.generate_feedback(prompt)

    return FeedbackResponse(
        ielts_scores=feedback_generator.parse_feedback(raw_feedback),
        transcript=transcription.text,
        metrics=metrics,
        question=feedback_request.question,
        part=feedback_request.part,
    )


async def process_text_feedback(feedback_request: TextFeedbackRequest, request_id: str) -> FeedbackResponse:
    logging.info(f"[{request_id}] Processing text transcript ({len(feedback_request.transcript)} chars)")

    prompt = build_text_prompt(feedback_request.question, feedback_request.part, feedback_request.transcript)
    raw_feedback = await feedback_generator.generate_feedback(prompt)

    return FeedbackResponse(
        ielts_scores=feedback_generator.parse_feedback(raw_feedback),
        transcript=feedback_request.transcript,
        question=feedback_request.question,
        part=feedback_request.part,
    )


@app.api_route(FEEDBACK_PATH, methods=FEEDBACK_METHODS)
async def ielts_feedback(request: Request):
    """
    Score an IELTS speaking answer.

    Accepts multipart/form-data with an `audio` recording (plus optional
    `duration`, `question`, `part`) or a JSON body with `text`.
    """
    if request.method == "OPTIONS":
        return Response(status_code=200)

    if request.method != "POST":
        return error_response(405, "Method not allowed", headers={"Allow": "POST"})

    request_id = str(uuid.uuid4())[:8]
    content_type = request.headers.get("content-type", "")

    try:
        check_content_length(request)
        body = await request.body()
        if "multipart/form-data" in content_type:
            result = await process_audio_feedback(parse_audio_request(content_type, body), request_id)
        else:
            result = await process_text_feedback(parse_text_request(body), request_id)
        logging.info(f"[{request_id}] Feedback generated")
        return JSONResponse(status_code=200, content=result.to_payload())

    except ClientInputError as e:
        logging.info(f"[{request_id}] Rejected request: {e.message}")
        return error_response(e.status_code, e.message, details=e.details)

    except ConfigurationError as e:
        logging.error(f"[{request_id}] Configuration error: {e}")
        return error_response(
            500,
            f"{e.setting} not configured",
            details=f"{e.setting} environment variable is missing",
        )

    except UpstreamServiceError as e:
        logging.error(f"[{request_id}] {e.service} call failed: {e.message}", exc_info=True)
        if e.status_code and e.status_code >= 400:
            return error_response(
                e.status_code,
                f"{e.service} API error",
                details=e.message,
                status=e.status_code,
            )
        return error_response(500, "Failed to generate feedback", details=e.message)

    except Exception as e:
        logging.error(f"[{request_id}] Feedback generation failed: {str(e)}", exc_info=True)
        return error_response(500, "Failed to generate feedback", details=str(e))


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "IELTS Speaking Feedback Service is running"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
