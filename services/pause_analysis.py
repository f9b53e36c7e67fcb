from typing import List, Dict, Any, Optional
from config import Config
from models import TimedWord

class PauseAnalyzer:
    def __init__(self, pause_threshold: Optional[float] = None):
        self.pause_threshold = Config.PAUSE_THRESHOLD if pause_threshold is None else pause_threshold
    
    def extract_pauses(self, words: List[TimedWord]) -> List[float]:
        """Collect inter-word gaps longer than the pause threshold, in order"""
        if len(words) < 2:
            return []
        
        pauses = []
        for i in range(1, len(words)):
            gap = words[i].start - words[i-1].end
            if gap > self.pause_threshold:
                pauses.append(gap)
        return pauses

    def summarize(self, pauses: List[float]) -> Dict[str, Any]:
        """Count, mean and longest pause; zeros when there are none"""
        if not pauses:
            return {
                "pause_count": 0,
                "average_pause_seconds": 0.0,
                "longest_pause_seconds": 0.0,
            }
        
        return {
            "pause_count": len(pauses),
            "average_pause_seconds": sum(pauses) / len(pauses),
            "longest_pause_seconds": max(pauses),
        }
