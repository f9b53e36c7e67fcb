import asyncio
import httpx
import logging
from typing import Dict, Any, Optional
from pydantic import ValidationError
from config import Config
from models import TimedWord, TranscriptionResult
from services.errors import ConfigurationError, UpstreamServiceError

SERVICE_NAME = "AssemblyAI"


class TranscriptionService:
    def __init__(self, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key if api_key is not None else Config.ASSEMBLYAI_API_KEY
        self.base_url = Config.ASSEMBLYAI_BASE_URL
        self.poll_interval = Config.TRANSCRIPTION_POLL_INTERVAL
        self.max_polls = Config.TRANSCRIPTION_MAX_POLLS

        timeout = httpx.Timeout(
            Config.TRANSCRIPTION_TIMEOUT,
            connect=30.0,
        )
        limits = httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5
        )
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=limits,
            follow_redirects=True
        )

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise ConfigurationError("ASSEMBLYAI_API_KEY")
        return {"authorization": self.api_key}

    async def transcribe(self, audio: bytes, filename: str = "audio") -> TranscriptionResult:
        """Upload audio bytes, run a transcription job and return words with timings"""
        headers = self._headers()
        upload_url = await self.upload_audio(audio, filename, headers)
        transcript_id = await self.submit_transcription(upload_url, headers)
        result = await self._poll_transcript(transcript_id, headers)
        return self.parse_transcription_result(result)

    async def upload_audio(self, audio: bytes, filename: str, headers: Dict[str, str]) -> str:
        logging.info(f"Uploading {filename} ({len(audio)} bytes)")
        response = await self._request("POST", "/upload", headers=headers, content=audio)

        upload_url = response.json().get("upload_url")
        if not upload_url:
            raise UpstreamServiceError(SERVICE_NAME, "No upload URL returned")
        logging.info(f"File uploaded successfully: {upload_url}")
        return upload_url

    async def submit_transcription(self, audio_url: str, headers: Dict[str, str]) -> str:
        # disfluencies keeps "um"/"uh" in the word list
        json_data = {"audio_url": audio_url, "disfluencies": True}
        response = await self._request("POST", "/transcript", headers=headers, json=json_data)

        transcript_id = response.json().get("id")
        if not transcript_id:
            raise UpstreamServiceError(SERVICE_NAME, "Failed to get transcript ID from submission response")
        logging.info(f"Transcription job submitted successfully. Transcript ID: {transcript_id}")
        return transcript_id

    async def _poll_transcript(self, transcript_id: str, headers: Dict[str, str]) -> Dict[str, Any]:
        """Poll transcript status until it completes, fails or we give up"""
        for _ in range(self.max_polls):
            response = await self._request("GET", f"/transcript/{transcript_id}", headers=headers)
            result = response.json()
            status = result.get("status")

            if status == "completed":
                return result
            elif status == "error":
                error_msg = result.get("error", "Unknown transcription error")
                raise UpstreamServiceError(SERVICE_NAME, f"Transcription failed: {error_msg}")
            elif status in ["queued", "processing"]:
                await asyncio.sleep(self.poll_interval)
            else:
                raise UpstreamServiceError(SERVICE_NAME, f"Unknown status: {status}")

        raise UpstreamServiceError(SERVICE_NAME, "Transcription timeout - process took too long")

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.TimeoutException as e:
            logging.error(f"{SERVICE_NAME} {method} {path} timed out: {e}")
            raise UpstreamServiceError(SERVICE_NAME, f"Request timed out: {path}")
        except httpx.RequestError as e:
            logging.error(f"{SERVICE_NAME} {method} {path} failed: {e}")
            raise UpstreamServiceError(SERVICE_NAME, f"Network error: {e}")

        if response.status_code not in [200, 201]:
            error_text = response.text if response.content else "Unknown error"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("error"):
                error_text = str(body["error"])
            raise UpstreamServiceError(SERVICE_NAME, error_text, status_code=response.status_code)
        return response

    def parse_transcription_result(self, result: Dict[str, Any]) -> TranscriptionResult:
        """Parse AssemblyAI result into our format"""
        words = []
        for word_data in result.get("words") or []:
            try:
                words.append(TimedWord(
                    text=word_data["text"],
                    start=word_data["start"] / 1000.0,  # Convert to seconds
                    end=word_data["end"] / 1000.0,
                ))
            except (KeyError, TypeError, ValidationError):
                logging.warning(f"Skipping malformed word entry: {word_data}")

        duration = result.get("audio_duration")
        return TranscriptionResult(
            text=result.get("text") or "",
            words=words,
            duration=float(duration) if isinstance(duration, (int, float)) else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
