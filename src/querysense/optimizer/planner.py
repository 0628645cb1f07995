"""Execution-step planning.

Steps are produced in clause evaluation order (scan, filter, join,
aggregate, sort, limit) and only ever depend on steps produced before them,
so the step list is a topological order of an acyclic graph.
"""

from typing import Dict, List, Optional, Sequence, Set

from ..analyzer.models import Aggregation, QueryAnalysis
from ..models import (
    ExecutionStep,
    ParallelizationInfo,
    QueryContext,
    ResourceRequirements,
)

GIB = 1024 * 1024 * 1024

TABLE_SCAN_COST = 1000
FILTER_COST_PER_CONDITION = 100
JOIN_COST = 2000
AGGREGATE_COST_PER_FUNCTION = 500
SORT_COST_PER_COLUMN = 300
LIMIT_COST = 10

CPU_INTENSIVE_TOTAL_COST = 5000

PARALLEL_AGGREGATES = frozenset({"SUM", "COUNT", "MIN", "MAX", "AVG", "MEAN"})


def _can_parallelize_aggregation(aggregations: Sequence[Aggregation]) -> bool:
    return all(agg.function.upper() in PARALLEL_AGGREGATES for agg in aggregations)


class StepPlanner:
    """Builds and inspects execution-step DAGs."""

    def __init__(self, *, bottleneck_cost_threshold: float = 1000.0, data_scale_cap: float = 10.0) -> None:
        self.bottleneck_cost_threshold = bottleneck_cost_threshold
        self.data_scale_cap = data_scale_cap

    def generate_steps(self, query: str, analysis: QueryAnalysis) -> List[ExecutionStep]:
        pattern = analysis.pattern
        steps: List[ExecutionStep] = []
        counter = 0

        def next_id(prefix: str) -> str:
            nonlocal counter
            step_id = f"{prefix}_{counter}"
            counter += 1
            return step_id

        scans = []
        for table in pattern.tables:
            scan = ExecutionStep(
                id=next_id("scan"),
                operation="TABLE_SCAN",
                description=f"Scan table {table}",
                estimated_cost=TABLE_SCAN_COST,
                can_parallelize=True,
            )
            scans.append(scan)
            steps.append(scan)

        filter_step: Optional[ExecutionStep] = None
        if pattern.conditions:
            filter_step = ExecutionStep(
                id=next_id("filter"),
                operation="FILTER",
                description="Apply WHERE conditions",
                estimated_cost=len(pattern.conditions) * FILTER_COST_PER_CONDITION,
                dependencies=[s.id for s in scans],
                can_parallelize=True,
            )
            steps.append(filter_step)

        frontier = [filter_step.id] if filter_step is not None else [s.id for s in scans]
        join_ids: List[str] = []

        for join in pattern.joins:
            if filter_step is not None:
                dependencies = [filter_step.id]
            else:
                dependencies = [
                    s.id for s in scans
                    if s.description.endswith((f" {join.left_table}", f" {join.right_table}"))
                ] or [s.id for s in scans]
            join_step = ExecutionStep(
                id=next_id("join"),
                operation="JOIN",
                description=f"{join.type} JOIN {join.left_table} with {join.right_table}",
                estimated_cost=JOIN_COST,
                dependencies=dependencies,
                can_parallelize=join.type == "INNER",
            )
            join_ids.append(join_step.id)
            steps.append(join_step)
        if join_ids:
            frontier = join_ids

        if pattern.aggregations:
            steps.append(ExecutionStep(
                id=next_id("aggregate"),
                operation="AGGREGATE",
                description="Apply aggregation functions",
                estimated_cost=len(pattern.aggregations) * AGGREGATE_COST_PER_FUNCTION,
                dependencies=list(frontier),
                can_parallelize=_can_parallelize_aggregation(pattern.aggregations),
            ))
            frontier = [steps[-1].id]

        if pattern.order_by:
            columns = ", ".join(f"{o.column} {o.direction}" for o in pattern.order_by)
            steps.append(ExecutionStep(
                id=next_id("sort"),
                operation="SORT",
                description=f"Sort by {columns}",
                estimated_cost=len(pattern.order_by) * SORT_COST_PER_COLUMN,
                dependencies=list(frontier),
            ))
            frontier = [steps[-1].id]

        if pattern.limit is not None:
            steps.append(ExecutionStep(
                id=next_id("limit"),
                operation="LIMIT",
                description=f"Limit to {pattern.limit} rows",
                estimated_cost=LIMIT_COST,
                dependencies=list(frontier),
            ))

        return steps

    @staticmethod
    def _ancestors(steps: Sequence[ExecutionStep]) -> Dict[str, Set[str]]:
        ancestors: Dict[str, Set[str]] = {}
        for step in steps:
            found: Set[str] = set()
            for dependency in step.dependencies:
                found.add(dependency)
                found |= ancestors.get(dependency, set())
            ancestors[step.id] = found
        return ancestors

    def analyze_parallelization(self, steps: Sequence[ExecutionStep]) -> ParallelizationInfo:
        """Group mutually independent parallelizable steps and flag bottlenecks.

        Groups are formed greedily in step order: a step joins the current
        group when no member depends on it and it depends on no member.
        """
        ancestors = self._ancestors(steps)

        def independent(a: str, b: str) -> bool:
            return a not in ancestors[b] and b not in ancestors[a]

        groups: List[List[str]] = []
        visited: Set[str] = set()
        candidates = [s for s in steps if s.can_parallelize]
        for step in candidates:
            if step.id in visited:
                continue
            group = [step.id]
            visited.add(step.id)
            for other in candidates:
                if other.id in visited:
                    continue
                if all(independent(other.id, member) for member in group):
                    group.append(other.id)
                    visited.add(other.id)
            if len(group) > 1:
                groups.append(group)

        bottlenecks = [
            s.id for s in steps
            if not s.can_parallelize and s.estimated_cost > self.bottleneck_cost_threshold
        ]
        return ParallelizationInfo(
            max_degree_of_parallelism=max((len(g) for g in groups), default=1),
            parallel_steps=groups,
            bottlenecks=bottlenecks,
        )

    def calculate_resource_requirements(
        self,
        steps: Sequence[ExecutionStep],
        context: Optional[QueryContext] = None,
    ) -> ResourceRequirements:
        operations = {s.operation for s in steps}
        total_cost = sum(s.estimated_cost for s in steps)
        has_joins = "JOIN" in operations
        has_aggregations = "AGGREGATE" in operations

        min_memory, max_memory = 64, 512
        if has_joins:
            min_memory, max_memory = max(min_memory, 128), max(max_memory, 1024)
        if has_aggregations:
            min_memory, max_memory = max(min_memory, 256), max(max_memory, 2048)
        if "SORT" in operations:
            min_memory, max_memory = max(min_memory, 512), max(max_memory, 4096)

        if context is not None:
            scale = min(context.data_size.total_size / GIB, self.data_scale_cap)
            min_memory = int(min_memory * (1 + scale))
            max_memory = int(max_memory * (1 + scale))

        return ResourceRequirements(
            min_memory=min_memory,
            max_memory=max_memory,
            cpu_intensive=has_joins or has_aggregations or total_cost > CPU_INTENSIVE_TOTAL_COST,
            io_intensive="TABLE_SCAN" in operations,
            network_intensive=has_joins,
        )
