"""Clause extraction: hosted NER when configured, keyword rules otherwise.

The keyword extractor is the ground truth fallback. Any NER failure, or an
NER answer that maps onto no known clause type, falls back to it.
"""
import re
from typing import Dict, List, Optional, Sequence, Tuple
import structlog

from lexrag.generation.invoker import ResilientInvoker
from lexrag.generation.selector import ModelDescriptor
from lexrag.llm_client import NerClient
from lexrag.models import Clause

logger = structlog.get_logger()

MAX_CLAUSES = 6
CONTEXT_BEFORE = 50
CONTEXT_AFTER = 100
BASE_CONFIDENCE = 0.75
CONFIDENCE_SPAN = 0.2

CLAUSE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "termination": ("terminate", "termination", "end this agreement", "cancel", "cancellation"),
    "indemnity": ("indemnify", "indemnification", "hold harmless", "defend", "liability"),
    "confidentiality": ("confidential", "confidentiality", "non-disclosure", "proprietary", "trade secret"),
    "jurisdiction": ("jurisdiction", "governing law", "courts of", "legal proceedings", "dispute resolution"),
    "payment": ("payment", "pay", "invoice", "fee", "compensation", "remuneration"),
    "intellectual_property": ("intellectual property", "copyright", "trademark", "patent", "proprietary rights"),
}


def _keyword_pattern(keyword: str) -> re.Pattern:
    # Anchored at a word start so "pay" does not fire inside "repay"
    return re.compile(r"\b" + re.escape(keyword))


_PATTERNS: Dict[str, List[Tuple[str, re.Pattern]]] = {
    clause_type: [(kw, _keyword_pattern(kw)) for kw in keywords]
    for clause_type, keywords in CLAUSE_KEYWORDS.items()
}


def keyword_confidence(lower_text: str, clause_type: str) -> float:
    """0.75 plus up to 0.2 for the share of the type's keywords present."""
    patterns = _PATTERNS[clause_type]
    matched = sum(1 for _, pattern in patterns if pattern.search(lower_text))
    return round(BASE_CONFIDENCE + CONFIDENCE_SPAN * matched / len(patterns), 4)


def _clause_for(text: str, lower_text: str, clause_type: str) -> Optional[Clause]:
    for keyword, pattern in _PATTERNS[clause_type]:
        match = pattern.search(lower_text)
        if match is None:
            continue

        start = max(0, match.start() - CONTEXT_BEFORE)
        end = min(len(text), match.start() + len(keyword) + CONTEXT_AFTER)
        window = text[start:end].strip()

        sentence = next(
            (s.strip() for s in window.split(".") if s.strip() and keyword in s.lower()),
            None,
        )
        if sentence:
            return Clause(
                type=clause_type,
                text=sentence + ".",
                confidence=keyword_confidence(lower_text, clause_type),
                start_index=start,
                end_index=end,
            )
    return None


def extract_clauses_by_keywords(text: str) -> List[Clause]:
    """Rule-based clause extraction.

    Args:
        text: Document text

    Returns:
        At most one clause per type, in keyword-table order, capped at 6
    """
    if not text:
        return []

    lower_text = text.lower()
    clauses = []
    for clause_type in CLAUSE_KEYWORDS:
        clause = _clause_for(text, lower_text, clause_type)
        if clause is not None:
            clauses.append(clause)

    logger.info("keyword_clauses_extracted", clause_count=len(clauses), text_length=len(text))
    return clauses[:MAX_CLAUSES]


def clauses_from_entities(text: str, entities: Sequence[dict]) -> List[Clause]:
    """Map NER entities whose group names a clause type onto clauses.

    Keeps the highest-scoring entity per type.
    """
    best: Dict[str, Clause] = {}
    for entity in entities:
        group = str(entity.get("entity_group") or entity.get("entity") or "").lower()
        group = group.replace("-", "_").replace(" ", "_")
        if group.startswith(("b_", "i_")):
            group = group[2:]
        if group not in CLAUSE_KEYWORDS:
            continue

        try:
            start = int(entity.get("start", 0))
            end = int(entity.get("end", start))
            score = float(entity.get("score", 0.0))
        except (TypeError, ValueError):
            continue

        start = max(0, min(start, len(text)))
        end = max(start, min(end, len(text)))
        snippet = (entity.get("word") or text[start:end]).strip()
        if not snippet:
            continue

        clause = Clause(
            type=group,
            text=snippet,
            confidence=min(1.0, max(0.0, score)),
            start_index=start,
            end_index=end,
        )
        if group not in best or clause.confidence > best[group].confidence:
            best[group] = clause

    ordered = [best[t] for t in CLAUSE_KEYWORDS if t in best]
    return ordered[:MAX_CLAUSES]


class ClauseExtractor:
    """Extracts clauses, preferring the NER backend when one is configured."""

    def __init__(self, ner_client: NerClient = None, invoker: ResilientInvoker = None):
        self.ner_client = ner_client
        self.invoker = invoker or ResilientInvoker()

    async def extract(self, text: str) -> List[Clause]:
        """Extract clauses; backend failures are never surfaced."""
        if self.ner_client is None or not self.ner_client.enabled:
            return extract_clauses_by_keywords(text)

        try:
            entities = await self.invoker.invoke(
                lambda _model: self.ner_client.extract_entities(text),
                [ModelDescriptor(self.ner_client.model)],
            )
        except Exception as e:
            logger.error(
                "ner_clause_extraction_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return extract_clauses_by_keywords(text)

        clauses = clauses_from_entities(text, entities)
        if not clauses:
            logger.info("ner_found_no_clauses_using_keywords", entity_count=len(entities))
            return extract_clauses_by_keywords(text)
        return clauses
