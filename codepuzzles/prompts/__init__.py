"""
Prompt templates for puzzle generation, review and grading.

Builders are pure functions of their inputs; templates are module constants.
"""

from codepuzzles.prompts.generation import (
    GENERATION_SYSTEM_PROMPT,
    build_generation_user_prompt,
    build_supporting_context,
)
from codepuzzles.prompts.grading import (
    GRADING_SYSTEM_PROMPT,
    build_insufficient_context_prompt,
    build_range_submission_prompt,
)
from codepuzzles.prompts.repair import (
    REPAIR_SYSTEM_PROMPT,
    RepairVerdict,
    build_repair_user_prompt,
    parse_repair_response,
)

__all__ = [
    "GENERATION_SYSTEM_PROMPT",
    "GRADING_SYSTEM_PROMPT",
    "REPAIR_SYSTEM_PROMPT",
    "RepairVerdict",
    "build_generation_user_prompt",
    "build_insufficient_context_prompt",
    "build_range_submission_prompt",
    "build_repair_user_prompt",
    "build_supporting_context",
    "parse_repair_response",
]
