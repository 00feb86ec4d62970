"""Prompt templates for analysis, explanation and document chat."""
from typing import Dict, List

from lexrag.models import AnalysisKind

_ANALYSIS_TEMPLATES = {
    AnalysisKind.RISK: """Analyze this legal text for risks and liabilities. Return JSON with:
{{
    "risks": ["risk description"],
    "mitigations": ["mitigation strategy"],
    "confidence": 0-100
}}
Text: {text}""",
    AnalysisKind.REVIEW: """Review this legal text. Return JSON with:
{{
    "strengths": ["strength description"],
    "weaknesses": ["weakness description"],
    "recommendations": ["improvement suggestion"],
    "confidence": 0-100
}}
Text: {text}""",
    AnalysisKind.AMBIGUITY: """Identify ambiguous terms. Return JSON with:
{{
    "ambiguousTerms": ["term/phrase"],
    "clarifications": ["clear alternative"],
    "confidence": 0-100
}}
Text: {text}""",
    AnalysisKind.GENERIC: """Analyze this legal text. Return JSON with:
{{
    "analysis": ["key insight"],
    "confidence": 0-100
}}
Text: {text}""",
}

EXPLAIN_SYSTEM_PROMPT = (
    "You are a helpful legal assistant that explains complex legal text in simple, "
    "everyday language. Your goal is to make legal concepts accessible to non-lawyers. "
    "Always provide clear, concise explanations and highlight the key practical implications."
)

_EXPLAIN_USER_TEMPLATE = """Please explain this legal text in simple terms that anyone can understand:

{text}

Answer with these sections:
Simplified Explanation: a short plain-language explanation
Key Points: the key points as a bulleted list
Practical Implications: what this means in practical terms"""

CHAT_SYSTEM_PROMPT = (
    "You are an expert legal assistant specializing in contract analysis. You help users "
    "understand legal documents, identify risks, and provide practical advice. Always be "
    "precise, helpful, and reference specific parts of the document when relevant. "
    "Use ONLY the provided document excerpts; if they do not answer the question, say so."
)

_CHAT_USER_TEMPLATE = """Relevant excerpts from the legal document:

{context}

User question: {question}

Please provide a helpful, specific answer."""


def analysis_messages(text: str, kind: AnalysisKind) -> List[Dict[str, str]]:
    """Single user message asking for a JSON analysis of the given kind."""
    return [{"role": "user", "content": _ANALYSIS_TEMPLATES[kind].format(text=text)}]


def explain_messages(text: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": EXPLAIN_SYSTEM_PROMPT},
        {"role": "user", "content": _EXPLAIN_USER_TEMPLATE.format(text=text)},
    ]


def chat_messages(question: str, context: str) -> List[Dict[str, str]]:
    if not context:
        context = "(The document is empty.)"
    return [
        {"role": "system", "content": CHAT_SYSTEM_PROMPT},
        {"role": "user", "content": _CHAT_USER_TEMPLATE.format(context=context, question=question)},
    ]


def prompt_size(messages: List[Dict[str, str]]) -> int:
    """Total characters across message contents."""
    return sum(len(m["content"]) for m in messages)
