"""WordPiece-style tokenizer over a plain vocabulary file.

An approximation of BERT tokenization: whitespace words, exact vocabulary
lookups, then greedy longest-prefix subword matching. It does no punctuation
splitting, but the output is deterministic for a given vocabulary.
"""
from pathlib import Path
from typing import Dict, List, Sequence
import structlog

logger = structlog.get_logger()

START_TOKEN = "[CLS]"
END_TOKEN = "[SEP]"
UNKNOWN_TOKEN = "[UNK]"
CONTINUATION_PREFIX = "##"
MAX_SUBWORD_LENGTH = 20


class WordPieceTokenizer:
    """Maps text to vocabulary ids framed by start and end tokens."""

    def __init__(
        self,
        vocabulary: Sequence[str],
        max_sequence_length: int = 256,
        lowercase: bool = True,
    ):
        """Initialize the tokenizer.

        Args:
            vocabulary: Tokens in id order (line number of vocab.txt)
            max_sequence_length: Maximum number of ids including start and end tokens
            lowercase: Lowercase words before lookup (uncased vocabularies)

        Raises:
            ValueError: If a special token is missing or the length is too small
        """
        if max_sequence_length < 2:
            raise ValueError("max_sequence_length must leave room for start and end tokens")

        self._ids: Dict[str, int] = {}
        for index, token in enumerate(vocabulary):
            # First occurrence wins
            self._ids.setdefault(token, index)

        missing = [t for t in (START_TOKEN, END_TOKEN, UNKNOWN_TOKEN) if t not in self._ids]
        if missing:
            raise ValueError(f"Vocabulary is missing special tokens: {', '.join(missing)}")

        self.max_sequence_length = max_sequence_length
        self.lowercase = lowercase
        self.start_id = self._ids[START_TOKEN]
        self.end_id = self._ids[END_TOKEN]
        self.unknown_id = self._ids[UNKNOWN_TOKEN]

    @classmethod
    def from_file(cls, vocab_path: Path, **kwargs) -> "WordPieceTokenizer":
        """Load a vocabulary file with one token per line."""
        with open(vocab_path, "r", encoding="utf-8") as f:
            vocabulary = [line.rstrip("\r\n") for line in f]

        logger.info("vocabulary_loaded", path=str(vocab_path), size=len(vocabulary))
        return cls(vocabulary, **kwargs)

    @property
    def vocabulary_size(self) -> int:
        return len(self._ids)

    def token_id(self, token: str) -> int:
        return self._ids.get(token, self.unknown_id)

    def _word_pieces(self, word: str) -> List[int]:
        whole = self._ids.get(word)
        if whole is not None:
            return [whole]

        pieces: List[int] = []
        remaining = word
        while remaining:
            prefix = CONTINUATION_PREFIX if pieces else ""
            match = None
            for length in range(min(len(remaining), MAX_SUBWORD_LENGTH), 0, -1):
                match = self._ids.get(prefix + remaining[:length])
                if match is not None:
                    pieces.append(match)
                    remaining = remaining[length:]
                    break

            if match is None:
                pieces.append(self.unknown_id)
                break

        return pieces

    def encode(self, text: str) -> List[int]:
        """Tokenize text into vocabulary ids.

        Args:
            text: Input text

        Returns:
            Ids starting with the start token and ending with the end token,
            never longer than max_sequence_length
        """
        limit = self.max_sequence_length - 1
        ids = [self.start_id]

        for word in (text or "").split():
            if len(ids) >= limit:
                break
            if self.lowercase:
                word = word.lower()
            ids.extend(self._word_pieces(word))

        ids = ids[:limit]
        ids.append(self.end_id)
        return ids
