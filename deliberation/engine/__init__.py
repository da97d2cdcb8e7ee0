"""
Council deliberation package.

This package provides the core logic for LLM council deliberation in
ranking mode.

Public API:
    - Orchestration: run_full_council, run_council_streaming, stream_council,
                     deliberate, reconstruct_outcome, CouncilRequest
    - Stages: preprocess_conversation_history, stage1_collect_responses,
              stage2_collect_rankings, stage3_synthesize_final,
              generate_conversation_title
    - Fan-out: run_stage
    - Parsing: parse_ranking_from_text
    - Aggregation: calculate_aggregate_rankings
    - Prompts: DEFAULT_PROMPTS, PROMPT_TEMPLATES, fill_prompt_template,
               validate_prompt_template, get_effective_prompt
"""

# Aggregation
from .aggregation import calculate_aggregate_rankings

# Fan-out
from .fanout import run_stage

# Messages
from .messages import build_message_content

# Orchestrator
from .orchestrator import (
    ALL_MODELS_FAILED,
    CouncilRequest,
    deliberate,
    reconstruct_outcome,
    run_council_streaming,
    run_full_council,
    stream_council,
)

# Parsers
from .parsers import parse_ranking_from_text

# Prompts
from .prompts import (
    DEFAULT_PROMPTS,
    PROMPT_TEMPLATES,
    PromptTemplateError,
    fill_prompt_template,
    get_date_context,
    get_effective_prompt,
    require_valid_template,
    validate_prompt_template,
)

# Stage 1-2-3 flow
from .stages import (
    generate_conversation_title,
    preprocess_conversation_history,
    stage1_collect_responses,
    stage2_collect_rankings,
    stage3_synthesize_final,
)

__all__ = [
    # Orchestrator
    "ALL_MODELS_FAILED",
    "CouncilRequest",
    "deliberate",
    "reconstruct_outcome",
    "run_council_streaming",
    "run_full_council",
    "stream_council",
    # Stages
    "preprocess_conversation_history",
    "stage1_collect_responses",
    "stage2_collect_rankings",
    "stage3_synthesize_final",
    "generate_conversation_title",
    # Fan-out
    "run_stage",
    # Messages
    "build_message_content",
    # Parsers
    "parse_ranking_from_text",
    # Aggregation
    "calculate_aggregate_rankings",
    # Prompts
    "DEFAULT_PROMPTS",
    "PROMPT_TEMPLATES",
    "PromptTemplateError",
    "fill_prompt_template",
    "get_date_context",
    "get_effective_prompt",
    "require_valid_template",
    "validate_prompt_template",
]
