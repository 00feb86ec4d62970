"""Request and response models exchanged with the calling layer.

AnalysisResult is a discriminated union keyed by ``kind`` so consumers can
match on the concrete type instead of probing optional fields.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AnalysisKind(str, Enum):
    """Supported analysis flavours."""

    RISK = "risk"
    REVIEW = "review"
    AMBIGUITY = "ambiguity"
    GENERIC = "generic"

    @classmethod
    def from_name(cls, name: str) -> "AnalysisKind":
        """Map a free-form analysis type onto a kind, defaulting to generic."""
        try:
            return cls((name or "").strip().lower())
        except ValueError:
            return cls.GENERIC


class _ApiModel(BaseModel):
    """Serializes with camelCase keys, accepts both spellings on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


Confidence = Annotated[int, Field(ge=0, le=100)]


class RiskAnalysis(_ApiModel):
    kind: Literal["risk"] = "risk"
    risks: List[str] = Field(default_factory=list)
    mitigations: List[str] = Field(default_factory=list)
    confidence: Confidence = 0


class ReviewAnalysis(_ApiModel):
    kind: Literal["review"] = "review"
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: Confidence = 0


class AmbiguityAnalysis(_ApiModel):
    kind: Literal["ambiguity"] = "ambiguity"
    ambiguous_terms: List[str] = Field(default_factory=list)
    clarifications: List[str] = Field(default_factory=list)
    confidence: Confidence = 0


class GenericAnalysis(_ApiModel):
    kind: Literal["generic"] = "generic"
    analysis: List[str] = Field(default_factory=list)
    confidence: Confidence = 0


AnalysisResult = Annotated[
    Union[RiskAnalysis, ReviewAnalysis, AmbiguityAnalysis, GenericAnalysis],
    Field(discriminator="kind"),
]

# kind -> result model
ANALYSIS_MODELS = {
    AnalysisKind.RISK: RiskAnalysis,
    AnalysisKind.REVIEW: ReviewAnalysis,
    AnalysisKind.AMBIGUITY: AmbiguityAnalysis,
    AnalysisKind.GENERIC: GenericAnalysis,
}


class Clause(_ApiModel):
    """A clause located in the source text."""

    type: str
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    start_index: int
    end_index: int


class Explanation(_ApiModel):
    """Plain-language explanation of a passage."""

    original: str
    simplified: str
    key_points: List[str] = Field(default_factory=list)


class ChatAnswer(_ApiModel):
    """Answer to a question about a document."""

    text: str
    timestamp: datetime


# Requests


class AnalyzeTextRequest(_ApiModel):
    text: str = Field(..., min_length=1)
    analysis_type: str = "generic"


class ExtractClausesRequest(_ApiModel):
    text: str = Field(..., min_length=1)


class ExplainSimpleRequest(_ApiModel):
    text: str = Field(..., min_length=1)


class ChatRequest(_ApiModel):
    question: str = Field(..., min_length=1)
    document_text: str = ""
