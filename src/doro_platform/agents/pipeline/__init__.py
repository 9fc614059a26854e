"""Multi-layer reply pipeline: 5-stage package.

Stages:
1. PsychologyAgent (LLM lead psychology + deterministic stage/continuity)
2. IntelligenceAgent (catalog lookup, FactVerifier, market search, floor plans)
3. StrategyAgent (LLM strategy + psychology alignment/refinement)
4. ContentAgent (LLM reply in Doro's voice + floor-plan images)
5. SynthesisAgent (LLM validation + consultant briefing)
"""

from .contracts import (
    ConversationContext,
    DraftContent,
    FinalResponse,
    IntelligencePackage,
    PipelineResult,
    PsychologyProfile,
    StageResult,
    Strategy,
)
from .psychology_agent import PsychologyAgent
from .fact_verifier import FactVerifier
from .intelligence_agent import IntelligenceAgent
from .strategy_agent import StrategyAgent
from .content_agent import ContentAgent
from .synthesis_agent import SynthesisAgent

__all__ = [
    "ConversationContext",
    "DraftContent",
    "FinalResponse",
    "IntelligencePackage",
    "PipelineResult",
    "PsychologyProfile",
    "StageResult",
    "Strategy",
    "PsychologyAgent",
    "FactVerifier",
    "IntelligenceAgent",
    "StrategyAgent",
    "ContentAgent",
    "SynthesisAgent",
]
