"""
Prompt templates for council deliberation.

All prompt construction logic is centralized here for easier maintenance.
Each stage has a default template with ``{name}`` placeholders; users may
override any stage with a custom template as long as it keeps the stage's
required placeholders.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime

from ..models import CustomPrompts

logger = logging.getLogger(__name__)

STAGES = ("stage1", "stage2", "stage3", "preprocessing")

_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


class PromptTemplateError(ValueError):
    """A template is missing placeholders its stage requires."""

    def __init__(self, stage: str, missing: list[str]):
        self.stage = stage
        self.missing = missing
        placeholders = ", ".join(f"{{{name}}}" for name in missing)
        super().__init__(f"Template for {stage} is missing required placeholders: {placeholders}")


def get_date_context() -> str:
    """Return current date context to prepend to queries."""
    return f"Today's date is {datetime.now().strftime('%B %d, %Y')}.\n\n"


DEFAULT_PROMPTS = {
    "stage1": "{question}",
    "stage2": """You are evaluating different responses to the following question:

Question: {question}

Here are the responses from different models (anonymized):

{responses}

Your task:
1. First, evaluate each response individually. For each response, explain what it does well and what it does poorly.
2. Then, at the very end of your response, provide a final ranking.

IMPORTANT: Your final ranking MUST be formatted EXACTLY as follows:
- Start with the line "FINAL RANKING:" (all caps, with colon)
- Then list the responses from best to worst as a numbered list
- Each line should be: number, period, space, then ONLY the response label (e.g., "1. Response A")
- Do not add any other text or explanations in the ranking section

Example of the correct format for your ENTIRE response:

Response A provides good detail on X but misses Y...
Response B is accurate but lacks depth on Z...
Response C offers the most comprehensive answer...

FINAL RANKING:
1. Response C
2. Response A
3. Response B

Now provide your evaluation and ranking:""",
    "stage3": """{dateContext}You are the Chairman of an LLM Council. Multiple AI models have provided responses to a user's question, and then ranked each other's responses.

Original Question: {question}

STAGE 1 - Individual Responses:
{stage1Responses}

STAGE 2 - Peer Rankings:
{rankings}

Your task as Chairman is to synthesize all of this information into a single, comprehensive, accurate answer to the user's original question. Consider:
- The individual responses and their insights
- The peer rankings and what they reveal about response quality
- Any patterns of agreement or disagreement

Provide a clear, well-reasoned final answer that represents the council's collective wisdom:""",
    "preprocessing": """You are a preprocessing assistant. Your task is to analyze the entire conversation history and create a comprehensive context summary that will help AI models provide better responses.

CONVERSATION HISTORY:
{conversationHistory}

{conversationAttachments}

{currentAttachments}

CURRENT USER MESSAGE:
{currentMessage}

YOUR TASK:
Provide a comprehensive summary that:
1. Identifies key topics and themes from the conversation history
2. Notes any relevant information from previous messages that helps understand the current question
3. Highlights important context from attachments if relevant
4. Creates an enhanced version of the current message that includes necessary context

Output ONLY the enhanced message that incorporates relevant context. Do not add meta-commentary or explanations.""",
}


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    description: str
    template: str
    required_variables: tuple[str, ...]
    available_variables: tuple[str, ...]


PROMPT_TEMPLATES = {
    "stage1": PromptTemplate(
        name="Stage 1: Individual Responses",
        description="The prompt sent to each council member to get their individual response. Usually just the question itself.",
        template=DEFAULT_PROMPTS["stage1"],
        required_variables=("question",),
        available_variables=("question", "dateContext"),
    ),
    "stage2": PromptTemplate(
        name="Stage 2: Peer Rankings",
        description="The prompt that asks each council member to evaluate and rank all the Stage 1 responses.",
        template=DEFAULT_PROMPTS["stage2"],
        required_variables=("question", "responses"),
        available_variables=("question", "responses", "dateContext"),
    ),
    "stage3": PromptTemplate(
        name="Stage 3: Chairman Synthesis",
        description="The prompt for the chairman model to synthesize all responses and rankings into a final answer.",
        template=DEFAULT_PROMPTS["stage3"],
        required_variables=("question", "stage1Responses", "rankings"),
        available_variables=("question", "stage1Responses", "rankings", "dateContext"),
    ),
    "preprocessing": PromptTemplate(
        name="Preprocessing: Context Summary",
        description="The prompt to summarize conversation history and provide enhanced context before the council deliberates.",
        template=DEFAULT_PROMPTS["preprocessing"],
        required_variables=("conversationHistory", "currentMessage"),
        available_variables=(
            "conversationHistory",
            "currentMessage",
            "conversationAttachments",
            "currentAttachments",
        ),
    ),
}


def validate_prompt_template(
    template: str, required_variables: tuple[str, ...] | list[str]
) -> tuple[bool, list[str]]:
    """
    Check that a template contains every required placeholder.

    Returns:
        Tuple of (valid, missing_variables)
    """
    missing = [name for name in required_variables if f"{{{name}}}" not in template]
    return not missing, missing


def require_valid_template(stage: str, template: str) -> str:
    """Return ``template`` unchanged, or raise PromptTemplateError if it is unusable for ``stage``."""
    if stage not in PROMPT_TEMPLATES:
        raise KeyError(f"Unknown stage: {stage}")
    valid, missing = validate_prompt_template(template, PROMPT_TEMPLATES[stage].required_variables)
    if not valid:
        raise PromptTemplateError(stage, missing)
    return template


def fill_prompt_template(template: str, variables: Mapping[str, str | None]) -> str:
    """
    Replace ``{name}`` placeholders with their values.

    Placeholders whose value is missing or None are removed. Substituted
    values are inserted verbatim and never re-scanned, so braces inside user
    text or model output survive.
    """

    def _substitute(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else value

    return _PLACEHOLDER.sub(_substitute, template).strip()


def get_effective_prompt(stage: str, custom_prompts: CustomPrompts | None = None) -> str:
    """
    Get the template to use for a stage: the custom one if set and valid, otherwise the default.
    """
    custom = custom_prompts.get(stage) if custom_prompts else None
    if not custom:
        return DEFAULT_PROMPTS[stage]

    try:
        return require_valid_template(stage, custom)
    except PromptTemplateError as e:
        logger.warning("%s; using the default template", e)
        return DEFAULT_PROMPTS[stage]


def build_title_prompt(user_query: str) -> str:
    """
    Build the conversation title generation prompt.

    Args:
        user_query: The first user message

    Returns:
        Title generation prompt
    """
    return f"""Generate a very short title (3-5 words maximum) that summarizes the following question.
The title should be concise and descriptive. Do not use quotes or punctuation in the title.

Question: {user_query}

Title:"""
