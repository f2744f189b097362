"""Generator, critic and reviser stages."""

from .critic import QualityGate
from .generator import CandidateGenerator
from .models import CritiqueOutcome, GenerationOutcome, LLMCallInfo, RevisionOutcome
from .reviser import CandidateReviser

__all__ = [
    "CandidateGenerator",
    "CandidateReviser",
    "CritiqueOutcome",
    "GenerationOutcome",
    "LLMCallInfo",
    "QualityGate",
    "RevisionOutcome",
]
