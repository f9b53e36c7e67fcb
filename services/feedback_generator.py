import json
import logging
import re
from copy import deepcopy
from typing import Any, Dict, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from config import Config
from services.errors import ConfigurationError, ResponseShapeError, UpstreamServiceError

SERVICE_NAME = "Gemini"

IELTS_EXAMINER_PROMPT = """You are an expert IELTS speaking examiner with 10+ years of experience. Analyze this IELTS speaking response and provide detailed band scores and feedback.

IMPORTANT: You MUST respond with ONLY valid JSON in this exact format (no markdown, no code blocks, just pure JSON):

{
  "overallBand": 7.0,
  "scores": {
    "fluencyCoherence": 7.0,
    "lexicalResource": 7.0,
    "grammaticalRange": 7.0,
    "pronunciation": 7.0
  },
  "feedback": {
    "summary": "One sentence overall assessment of the response",
    "fluencyAnalysis": {
      "score": 7.0,
      "strengths": ["Specific strength with quoted example"],
      "improvements": ["Specific area to improve with quoted example"],
      "details": "Analysis of speech rate, pauses, hesitations, discourse markers, logical flow"
    },
    "lexicalAnalysis": {
      "score": 7.0,
      "strengths": ["Specific strength with quoted example"],
      "improvements": ["Specific area to improve with quoted example"],
      "details": "Analysis of vocabulary range, topic-specific words, collocations, word choice"
    },
    "grammarAnalysis": {
      "score": 7.0,
      "strengths": ["Specific strength with quoted example"],
      "improvements": ["Specific area to improve with quoted example"],
      "details": "Analysis of sentence structures, tenses, complex grammar, accuracy"
    },
    "pronunciationAnalysis": {
      "score": 7.0,
      "strengths": ["Specific strength"],
      "improvements": ["Specific area to improve"],
      "details": "Analysis of clarity, word stress, intonation patterns"
    },
    "quotedExamples": {
      "effective": ["When you said '[exact quote]', this demonstrated [skill] because..."],
      "needsWork": ["The phrase '[exact quote]' could be improved by..."]
    },
    "nextBandTips": [
      "Specific actionable tip 1 to reach the next band level",
      "Specific actionable tip 2 to reach the next band level",
      "Specific actionable tip 3 to reach the next band level"
    ],
    "targetBand": 7.5
  }
}

BAND SCORE GUIDELINES (use official IELTS descriptors):

FLUENCY AND COHERENCE:
- Band 9: Speaks fluently with only rare hesitation, fully coherent with sophisticated discourse markers
- Band 7: Speaks at length without noticeable effort, uses discourse markers flexibly
- Band 5: Can keep going but with frequent repetition, self-correction, slow speech

LEXICAL RESOURCE:
- Band 9: Wide vocabulary with precise meanings, natural collocations, idiomatic expressions
- Band 7: Flexible vocabulary, some less common words, occasional errors in word choice
- Band 5: Limited vocabulary, manages familiar topics, noticeable errors in word formation

GRAMMATICAL RANGE AND ACCURACY:
- Band 9: Wide range of structures, full flexibility, rare minor errors
- Band 7: Range of complex structures, frequent error-free sentences, good control
- Band 5: Basic sentence forms, limited complex structures, frequent errors

PRONUNCIATION:
- Band 9: Full range of features, effortless to understand, L1 accent has no effect
- Band 7: Easy to understand, shows all positive features, some mispronunciation
- Band 5: Generally intelligible, limited range of features, mispronunciation causes difficulty

CRITICAL INSTRUCTIONS:
1. Be honest and accurate - don't inflate scores
2. Quote specific phrases from the transcript in your feedback
3. Base scores strictly on IELTS band descriptors
4. Calculate overall band as average of 4 scores (rounded to nearest 0.5)
5. Provide concrete, actionable advice for improvement
6. Focus on what IELTS examiners actually assess"""

CLOSING_INSTRUCTION = (
    "Analyze this IELTS speaking response and provide band scores with detailed feedback. "
    "Remember to respond with ONLY valid JSON."
)

TEXT_ONLY_NOTE = (
    "Note: This is a text-only analysis without audio metrics. For pronunciation, provide "
    "general guidance based on written patterns (word choice that might be difficult to "
    "pronounce, etc.)."
)

FALLBACK_FEEDBACK: Dict[str, Any] = {
    "overallBand": 0,
    "scores": {
        "fluencyCoherence": 0,
        "lexicalResource": 0,
        "grammaticalRange": 0,
        "pronunciation": 0,
    },
    "feedback": {
        "summary": "Unable to analyze response. Please try again.",
        "error": True,
    },
}


def build_audio_prompt(question: str, part: str, metrics_block: str, transcript: str) -> str:
    return (
        f'IELTS Speaking Part {part} Question: "{question}"\n\n'
        f"{metrics_block}\n"
        "TRANSCRIPT OF RESPONSE:\n"
        f'"{transcript}"\n\n'
        f"{CLOSING_INSTRUCTION}"
    )


def build_text_prompt(question: str, part: str, transcript: str) -> str:
    return (
        f'IELTS Speaking Part {part} Question: "{question}"\n\n'
        "TRANSCRIPT OF RESPONSE:\n"
        f'"{transcript}"\n\n'
        f"{TEXT_ONLY_NOTE}\n\n"
        f"{CLOSING_INSTRUCTION}"
    )


def fallback_feedback() -> Dict[str, Any]:
    return deepcopy(FALLBACK_FEEDBACK)


class FeedbackGenerator:
    def __init__(self, api_key: Optional[str] = None, model: Any = None):
        self.api_key = api_key if api_key is not None else Config.GEMINI_API_KEY
        if model is None:
            if self.api_key:
                genai.configure(api_key=self.api_key)
            model = genai.GenerativeModel(
                Config.GEMINI_MODEL,
                system_instruction=IELTS_EXAMINER_PROMPT,
            )
        self.model = model
        self.generation_config = genai.GenerationConfig(
            temperature=Config.GEMINI_TEMPERATURE,
            response_mime_type="application/json",
        )

    async def generate_feedback(self, prompt: str) -> str:
        """Send the user message to Gemini and return the raw response text"""
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY")

        try:
            response = await self.model.generate_content_async(
                prompt,
                generation_config=self.generation_config,
                request_options={"timeout": Config.GEMINI_TIMEOUT},
            )
        except google_exceptions.DeadlineExceeded as e:
            logging.error(f"Gemini call timed out: {e}")
            raise UpstreamServiceError(SERVICE_NAME, "Request timed out")
        except google_exceptions.GoogleAPICallError as e:
            logging.error(f"Gemini call failed: {e}", exc_info=True)
            raise UpstreamServiceError(SERVICE_NAME, e.message or str(e), status_code=e.code)

        try:
            return (response.text or "").strip()
        except ValueError as e:
            # Blocked or empty candidates; parse_feedback falls back
            logging.warning(f"Gemini returned no usable text: {e}")
            return ""

    def parse_feedback(self, raw: str) -> Dict[str, Any]:
        """Parse the model's JSON, or return the fixed fallback document"""
        try:
            return self._parse(raw)
        except ResponseShapeError as e:
            logging.error(f"Failed to parse IELTS feedback JSON: {e}")
            return fallback_feedback()

    def _parse(self, raw: str) -> Dict[str, Any]:
        text = (raw or "").strip()
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text).strip()
        if not text:
            raise ResponseShapeError("empty response")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ResponseShapeError(f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ResponseShapeError(f"expected a JSON object, got {type(data).__name__}")
        if "overallBand" not in data:
            raise ResponseShapeError("missing overallBand")
        if not isinstance(data.get("scores"), dict):
            raise ResponseShapeError("missing scores object")
        return data
