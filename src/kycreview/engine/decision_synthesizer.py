"""
KYC Review Decision Synthesizer

Builds the classifier prompt, calls the classifier and turns its answer
into a provisional verdict.

Classifier answers are read into one of two variants:
- ParsedResponse: a well-formed {verdict, confidence, reasoning} object
- DegradedResponse: anything else, kept as raw text

A DegradedResponse is recovered by scanning the raw text for APPROVED or
REJECTED (else ESCALATE) at a fixed degraded confidence. A classifier
call that raises is reported as ClassifierFailure for the caller to turn
into the fallback decision.
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from ..exceptions import ClassifierFailure
from ..models import BiasAnalysis, ClassifierResponse, NeighborRecord, Verdict

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
DEGRADED_CONFIDENCE = 0.6
DEFAULT_REASONING = "AI decision made"

PROMPT_TEMPLATE = """
Analyze this {document_type} document and make a compliance decision.

Document Text:
{text}

Bias Analysis:
- Bias Score: {bias_score}
- Factors: {factors}
- Recommendations: {recommendations}

Similar Documents: {neighbor_count} found

Instructions:
1. Consider the document authenticity and completeness
2. Account for bias factors in your analysis
3. Provide clear reasoning
4. Return verdict as APPROVED, REJECTED, or ESCALATE
5. Include confidence score (0-1)

Response format:
{{
  "verdict": "APPROVED|REJECTED|ESCALATE",
  "confidence": 0.95,
  "reasoning": "Detailed explanation..."
}}
"""


# =============================================================================
# Classifier response variants
# =============================================================================

@dataclass(frozen=True)
class ParsedResponse:
    """A structured classifier answer."""
    verdict: Verdict
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class DegradedResponse:
    """A classifier answer that could not be read as structured output."""
    raw_text: str


ClassifierResult = Union[ParsedResponse, DegradedResponse]


@dataclass(frozen=True)
class SynthesisResult:
    """Provisional verdict produced from a classifier answer."""
    verdict: Verdict
    confidence: float
    reasoning: str
    degraded: bool = False


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _as_mapping(response: ClassifierResponse) -> Optional[Mapping[str, Any]]:
    if isinstance(response, Mapping):
        return response
    try:
        loaded = json.loads(response)
    except (TypeError, ValueError):
        return None
    return loaded if isinstance(loaded, dict) else None


def parse_classifier_response(response: ClassifierResponse) -> ClassifierResult:
    """Read a classifier answer into ParsedResponse or DegradedResponse."""
    data = _as_mapping(response)
    raw_text = response if isinstance(response, str) else json.dumps(response, default=str)
    if data is None:
        return DegradedResponse(raw_text=raw_text)

    try:
        verdict = Verdict(str(data.get("verdict", "")).strip().upper())
    except ValueError:
        return DegradedResponse(raw_text=raw_text)

    confidence = data.get("confidence")
    if (
        isinstance(confidence, bool)
        or not isinstance(confidence, (int, float))
        or not confidence
        or not math.isfinite(confidence)
    ):
        confidence = DEFAULT_CONFIDENCE

    reasoning = data.get("reasoning") or DEFAULT_REASONING
    return ParsedResponse(
        verdict=verdict,
        confidence=_clamp(float(confidence)),
        reasoning=str(reasoning),
    )


def recover_degraded(response: DegradedResponse) -> SynthesisResult:
    """Keyword scan of raw classifier text."""
    text = response.raw_text
    if "APPROVED" in text:
        verdict = Verdict.APPROVED
    elif "REJECTED" in text:
        verdict = Verdict.REJECTED
    else:
        verdict = Verdict.ESCALATE
    return SynthesisResult(
        verdict=verdict,
        confidence=DEGRADED_CONFIDENCE,
        reasoning=text,
        degraded=True,
    )


def resolve(result: ClassifierResult) -> SynthesisResult:
    if isinstance(result, ParsedResponse):
        return SynthesisResult(
            verdict=result.verdict,
            confidence=result.confidence,
            reasoning=result.reasoning,
        )
    return recover_degraded(result)


# =============================================================================
# Synthesizer
# =============================================================================

class DecisionSynthesizer:
    """
    Combines classifier output and bias analysis into a provisional verdict.

    Usage:
        synthesizer = DecisionSynthesizer()
        result = synthesizer.synthesize(text, "PAN", analysis, neighbors,
                                        classifier.classify)
    """

    def build_prompt(
        self,
        candidate_text: str,
        document_type: str,
        bias_analysis: BiasAnalysis,
        neighbor_count: int,
    ) -> str:
        return PROMPT_TEMPLATE.format(
            document_type=document_type,
            text=candidate_text,
            bias_score=bias_analysis.bias_score,
            factors=", ".join(bias_analysis.bias_factors),
            recommendations=", ".join(bias_analysis.recommendations),
            neighbor_count=neighbor_count,
        )

    def synthesize(
        self,
        candidate_text: str,
        document_type: str,
        bias_analysis: BiasAnalysis,
        neighbors: Sequence[NeighborRecord],
        classify: Callable[[str], ClassifierResponse],
    ) -> SynthesisResult:
        """
        Call the classifier and read its answer.

        Raises:
            ClassifierFailure: If the classifier call raises
        """
        prompt = self.build_prompt(candidate_text, document_type, bias_analysis, len(neighbors))
        try:
            response = classify(prompt)
        except ClassifierFailure:
            raise
        except Exception as e:
            raise ClassifierFailure(
                message=f"Classifier call failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        parsed = parse_classifier_response(response)
        if isinstance(parsed, DegradedResponse):
            logger.info("Classifier response not structured; using keyword recovery")
        return resolve(parsed)
