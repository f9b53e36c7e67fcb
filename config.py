from dotenv import load_dotenv
import os

load_dotenv()

# Configuration class for the application
class Config:
    # Credentials are checked when a collaborator is called, not at import
    ASSEMBLYAI_API_KEY = os.getenv("ASSEMBLYAI_API_KEY")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")

    ASSEMBLYAI_BASE_URL = os.getenv("ASSEMBLYAI_BASE_URL", "https://api.assemblyai.com/v2")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash-lite")
    GEMINI_TEMPERATURE = 0.3

    # Network configuration
    TRANSCRIPTION_TIMEOUT = float(os.getenv("TRANSCRIPTION_TIMEOUT", "120"))
    TRANSCRIPTION_POLL_INTERVAL = float(os.getenv("TRANSCRIPTION_POLL_INTERVAL", "1"))
    TRANSCRIPTION_MAX_POLLS = int(os.getenv("TRANSCRIPTION_MAX_POLLS", "120"))
    GEMINI_TIMEOUT = float(os.getenv("GEMINI_TIMEOUT", "60"))

    # File size limits
    MAX_FILE_SIZE = 25 * 1024 * 1024  # 25MB (AssemblyAI limit)
    MAX_REQUEST_SIZE = MAX_FILE_SIZE + 1024 * 1024  # room for the other form fields

    # Request defaults
    DEFAULT_AUDIO_QUESTION = "IELTS Speaking Question"
    DEFAULT_TEXT_QUESTION = "General IELTS Question"
    DEFAULT_PART = "1"

    # Analysis thresholds
    PAUSE_THRESHOLD = 0.2  # seconds, strictly greater than
    HALTING_PAUSE_RATIO = 0.3
    RUSHED_PAUSE_RATIO = 0.1
    RUSHED_WPM_THRESHOLD = 150
    SLOW_WPM_THRESHOLD = 120
    FAST_WPM_THRESHOLD = 160

    # Matched against whole tokens only, so "you know" needs a single token
    FILLER_WORDS = frozenset({
        "um",
        "uh",
        "like",
        "you know",
        "so",
        "basically",
        "actually",
        "literally",
    })

    # Cross-origin response headers
    CORS_HEADERS = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }
