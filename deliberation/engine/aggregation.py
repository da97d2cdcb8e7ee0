"""
Ranking aggregation utilities for council deliberation.

Calculates aggregate rankings from peer evaluations.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from ..models import AggregateRanking, Stage2Result


def _mean_rounded(positions: list[int]) -> float:
    """Mean position to 2 decimals, halves rounded up (1.125 -> 1.13)."""
    mean = Decimal(sum(positions)) / Decimal(len(positions))
    return float(mean.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_aggregate_rankings(
    stage2_results: Iterable[Stage2Result], label_to_model: Mapping[str, str]
) -> list[AggregateRanking]:
    """
    Calculate aggregate rankings across all models.

    Args:
        stage2_results: Rankings from each model
        label_to_model: Mapping from anonymous labels to model names

    Returns:
        AggregateRanking entries sorted best (lowest average position) to worst.
        Models no evaluator mentioned are left out. Ties keep the order in
        which the models were first mentioned.
    """
    # Track positions for each model
    model_positions: dict[str, list[int]] = defaultdict(list)

    for result in stage2_results:
        for position, label in enumerate(result.parsed_ranking, start=1):
            model_name = label_to_model.get(label)
            if model_name is not None:
                model_positions[model_name].append(position)

    # Calculate average position for each model
    aggregate = [
        AggregateRanking(
            model=model,
            average_rank=_mean_rounded(positions),
            rankings_count=len(positions),
        )
        for model, positions in model_positions.items()
    ]

    # Sort by average rank (lower is better); sort is stable
    aggregate.sort(key=lambda entry: entry.average_rank)

    return aggregate
