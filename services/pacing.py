import math
from typing import Optional
from config import Config

class PacingAnalyzer:
    def __init__(self):
        self.slow_threshold = Config.SLOW_WPM_THRESHOLD
        self.fast_threshold = Config.FAST_WPM_THRESHOLD
        self.rushed_wpm = Config.RUSHED_WPM_THRESHOLD
        self.halting_ratio = Config.HALTING_PAUSE_RATIO
        self.rushed_ratio = Config.RUSHED_PAUSE_RATIO
    
    def words_per_minute(self, word_count: int, duration: Optional[float]) -> int:
        """Speaking pace, rounded half up; 0 when the duration is unusable"""
        if not duration or not math.isfinite(duration) or duration <= 0:
            return 0
        wpm = word_count / duration * 60
        if not math.isfinite(wpm):
            return 0
        return math.floor(wpm + 0.5)

    def classify_variation(self, pause_count: int, word_count: int, wpm: int) -> str:
        # First match wins
        if pause_count > word_count * self.halting_ratio:
            return "halting"
        if pause_count < word_count * self.rushed_ratio and wpm > self.rushed_wpm:
            return "rushed"
        return "steady"

    def describe_pace(self, wpm: int) -> str:
        if wpm < self.slow_threshold:
            return "slow - may indicate hesitation"
        elif wpm > self.fast_threshold:
            return "fast - may affect clarity"
        else:
            return "moderate - good pace"
