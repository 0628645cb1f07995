"""Rule-based rewrites.

A rule pairs a trigger predicate over the query analysis with an apply step
over the query text. Rules are independent: each one that triggers
contributes its technique and its estimated gain.
"""

from dataclasses import dataclass, field
from typing import Callable, List

from ..analyzer.models import QueryAnalysis
from ..models import ImpactLevel, OptimizationTechnique


@dataclass
class RuleResult:
    query: str
    applied_to: List[str] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class OptimizationRule:
    """A named rewrite with a trigger and an estimated gain in percent."""
    name: str
    description: str
    estimated_gain: float
    predicate: Callable[[QueryAnalysis], bool]
    apply: Callable[[str], RuleResult]

    @property
    def impact(self) -> ImpactLevel:
        if self.estimated_gain > 25:
            return "high"
        if self.estimated_gain > 15:
            return "medium"
        return "low"

    def technique(self, result: RuleResult) -> OptimizationTechnique:
        return OptimizationTechnique(
            name=self.name,
            description=self.description,
            impact=self.impact,
            applied_to=list(result.applied_to),
            estimated_gain=self.estimated_gain,
        )


def _annotate(clause: str) -> Callable[[str], RuleResult]:
    # Text is unchanged; only the touched clause is recorded
    def apply(query: str) -> RuleResult:
        return RuleResult(query=query, applied_to=[clause])
    return apply


DEFAULT_RULES: List[OptimizationRule] = [
    OptimizationRule(
        name="predicate_pushdown",
        description="Push WHERE conditions down to reduce data scanning",
        estimated_gain=30,
        predicate=lambda analysis: bool(analysis.pattern.conditions),
        apply=_annotate("WHERE clause"),
    ),
    OptimizationRule(
        name="join_reordering",
        description="Reorder JOINs to minimize intermediate results",
        estimated_gain=25,
        predicate=lambda analysis: len(analysis.pattern.joins) > 1,
        apply=_annotate("JOIN clause"),
    ),
    OptimizationRule(
        name="aggregation_optimization",
        description="Optimize GROUP BY and aggregation functions",
        estimated_gain=20,
        predicate=lambda analysis: bool(analysis.pattern.aggregations),
        apply=_annotate("GROUP BY clause"),
    ),
    OptimizationRule(
        name="limit_pushdown",
        description="Push LIMIT clause to reduce data processing",
        estimated_gain=15,
        predicate=lambda analysis: analysis.pattern.limit is not None,
        apply=_annotate("LIMIT clause"),
    ),
]
