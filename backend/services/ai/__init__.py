"""
AI layer for RefugeeWatch.

Provides LLM-powered analysis on top of the crisis assessments:
- Crisis analysis (risk, displacement prediction, early warning)
- Response plan generation with computed cost and staffing models

Both services degrade to rule-based output when the model is unavailable.
"""

from __future__ import annotations

from services.ai.llm_provider import (
    HuggingFaceRouterProvider,
    LLMMessage,
    LLMResponse,
    parse_json_content,
)
from services.ai.crisis_analyzer import CrisisAnalyzer
from services.ai.response_planner import ResponsePlanner

__all__ = [
    "HuggingFaceRouterProvider",
    "LLMMessage",
    "LLMResponse",
    "parse_json_content",
    "CrisisAnalyzer",
    "ResponsePlanner",
]
