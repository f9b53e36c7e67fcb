import logging
from typing import List, Optional

from models import SpeechMetrics, TimedWord
from services.filler_words import FillerWordCounter
from services.pacing import PacingAnalyzer
from services.pause_analysis import PauseAnalyzer


class SpeechMetricsAnalyzer:
    """Derives pacing and disfluency statistics from word-level timings.

    Never raises: missing or unusable timing data yields zero values.
    """

    def __init__(self):
        self.pause_analyzer = PauseAnalyzer()
        self.pacing_analyzer = PacingAnalyzer()
        self.filler_counter = FillerWordCounter()

    def analyze(self, words: List[TimedWord], duration: Optional[float]) -> SpeechMetrics:
        if not words:
            return SpeechMetrics.empty()

        word_count = len(words)
        filler_count = self.filler_counter.count(words)
        pauses = self.pause_analyzer.extract_pauses(words)
        pause_summary = self.pause_analyzer.summarize(pauses)
        wpm = self.pacing_analyzer.words_per_minute(word_count, duration)
        variation = self.pacing_analyzer.classify_variation(
            pause_summary["pause_count"], word_count, wpm
        )

        logging.debug(
            f"Metrics: {word_count} words, {wpm} wpm, {pause_summary['pause_count']} pauses, "
            f"{filler_count} fillers, {variation}"
        )

        return SpeechMetrics(
            words_per_minute=wpm,
            average_pause_seconds=pause_summary["average_pause_seconds"],
            longest_pause_seconds=pause_summary["longest_pause_seconds"],
            filler_word_count=filler_count,
            pause_count=pause_summary["pause_count"],
            pacing_variation=variation,
        )

    def render_block(self, metrics: SpeechMetrics, word_count: int, duration: Optional[float]) -> str:
        """Plain-language summary of the metrics for the examiner prompt"""
        pace = self.pacing_analyzer.describe_pace(metrics.words_per_minute)
        return (
            "SPEECH METRICS (use these for fluency analysis):\n"
            f"- Speaking pace: {metrics.words_per_minute} words per minute ({pace})\n"
            f"- Pacing variation: {metrics.pacing_variation}\n"
            f"- Notable pauses: {metrics.pause_count} pauses detected\n"
            f"- Average pause duration: {metrics.average_pause_seconds:.2f}s\n"
            f"- Longest pause: {metrics.longest_pause_seconds:.2f}s\n"
            f'- Filler words: {metrics.filler_word_count} instances ("um", "uh", "like", etc.)\n'
            f"- Total words: {word_count}\n"
            f"- Speech duration: {duration or 0}s\n"
        )
