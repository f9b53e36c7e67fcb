from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional, Union

PacingVariation = Literal["steady", "halting", "rushed", "unknown"]


class TimedWord(BaseModel):
    text: str
    start: float
    end: float

    @model_validator(mode="after")
    def _check_order(self) -> "TimedWord":
        if self.start > self.end:
            raise ValueError("word start must not be after its end")
        return self


class TranscriptionResult(BaseModel):
    text: str
    words: List[TimedWord] = Field(default_factory=list)
    duration: Optional[float] = None


class SpeechMetrics(BaseModel):
    """Pacing and disfluency statistics for one recording.

    Pause durations keep full precision; they are rounded to two decimals
    only when serialised.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    words_per_minute: int = Field(default=0, ge=0)
    average_pause_seconds: float = Field(default=0.0, ge=0)
    longest_pause_seconds: float = Field(default=0.0, ge=0)
    filler_word_count: int = Field(default=0, ge=0)
    pause_count: int = Field(default=0, ge=0)
    pacing_variation: PacingVariation = "unknown"

    @classmethod
    def empty(cls) -> "SpeechMetrics":
        return cls()

    @field_serializer("average_pause_seconds", "longest_pause_seconds")
    def _round_seconds(self, value: float) -> float:
        return round(value, 2)


class AudioFeedbackRequest(BaseModel):
    kind: Literal["audio"] = "audio"
    audio: bytes
    filename: str
    content_type: Optional[str] = None
    question: str
    part: str
    declared_duration: Optional[float] = None


class TextFeedbackRequest(BaseModel):
    kind: Literal["text"] = "text"
    transcript: str
    question: str
    part: str


FeedbackRequest = Union[AudioFeedbackRequest, TextFeedbackRequest]


class FeedbackResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ielts_scores: Dict[str, Any]
    transcript: str
    metrics: Optional[SpeechMetrics] = None
    question: str
    part: str

    def to_payload(self) -> Dict[str, Any]:
        # metrics only exists for audio submissions
        exclude = {"metrics"} if self.metrics is None else None
        return self.model_dump(by_alias=True, exclude=exclude)


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    status: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
