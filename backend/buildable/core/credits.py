"""Credit estimation and usage calculation."""

import math

from ..models.credits import Complexity, CreditEstimate

# Average tokens for generating one file, and for carrying one file as context
OUTPUT_TOKENS_PER_FILE = 1500
CONTEXT_TOKENS_PER_FILE = 500

# A request with an unknown file count is assumed to produce this many files
MIN_ESTIMATED_FILES = 5

LOW_COMPLEXITY_BELOW = 5_000
HIGH_COMPLEXITY_ABOVE = 20_000

COMPLEXITY_MULTIPLIERS = {
    Complexity.LOW: 1.0,
    Complexity.MEDIUM: 1.5,
    Complexity.HIGH: 2.0,
}

DEFAULT_COST_MULTIPLIER = 0.001


def complexity_for(tokens: int) -> Complexity:
    """Bucket a token count into a complexity level."""
    if tokens < LOW_COMPLEXITY_BELOW:
        return Complexity.LOW
    if tokens > HIGH_COMPLEXITY_ABOVE:
        return Complexity.HIGH
    return Complexity.MEDIUM


def calculate_credits(
    total_tokens: int,
    complexity: Complexity = Complexity.MEDIUM,
    cost_multiplier: float = DEFAULT_COST_MULTIPLIER,
) -> int:
    """
    Calculate credits consumed for a number of tokens.

    Args:
        total_tokens: Input plus output tokens
        complexity: Complexity bucket of the request
        cost_multiplier: Credits per token

    Returns:
        Number of credits consumed (rounded up)
    """
    if total_tokens <= 0:
        return 0
    multiplier = COMPLEXITY_MULTIPLIERS[Complexity(complexity)]
    return math.ceil(total_tokens * cost_multiplier * multiplier)


def estimate_credits(
    prompt: str,
    files_count: int = 0,
    cost_multiplier: float = DEFAULT_COST_MULTIPLIER,
) -> CreditEstimate:
    """
    Estimate credits for a generation request before it runs.

    Deterministic and non-decreasing in both prompt length and file count:
    output is budgeted for at least MIN_ESTIMATED_FILES files, so adding the
    first few known files never lowers the estimate.
    """
    files_count = max(files_count, 0)
    prompt_tokens = math.ceil(len(prompt) / 4)
    context_tokens = files_count * CONTEXT_TOKENS_PER_FILE
    output_tokens = max(files_count, MIN_ESTIMATED_FILES) * OUTPUT_TOKENS_PER_FILE

    estimated_tokens = prompt_tokens + context_tokens + output_tokens
    complexity = complexity_for(estimated_tokens)

    return CreditEstimate(
        estimated_tokens=estimated_tokens,
        estimated_credits=calculate_credits(estimated_tokens, complexity, cost_multiplier),
        complexity=complexity,
    )
