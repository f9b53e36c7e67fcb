from typing import Iterable, List, Optional
from config import Config
from models import TimedWord

class FillerWordCounter:
    def __init__(self, filler_words: Optional[Iterable[str]] = None):
        self.filler_words = frozenset(Config.FILLER_WORDS if filler_words is None else filler_words)

    def is_filler(self, token: str) -> bool:
        return token.lower().strip() in self.filler_words

    def count(self, words: List[TimedWord]) -> int:
        """Count whole tokens that are filler words.

        Phrases such as "you know" only count when the transcriber emitted
        them as one token; adjacent tokens are never joined.
        """
        return sum(1 for word in words if self.is_filler(word.text))
