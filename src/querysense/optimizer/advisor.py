"""Index, rewrite and configuration recommendations."""

import re
from typing import List, Optional

from ..analyzer.models import Join, QueryAnalysis
from ..models import QueryContext, Recommendation

_IDENTIFIER = re.compile(r"\W+")
_JOIN_KEYS = re.compile(r"(?:(\w+)\.)?(\w+)\s*=\s*(?:(\w+)\.)?(\w+)")


def _index_name(*parts: str) -> str:
    return "idx_" + "_".join(_IDENTIFIER.sub("_", p).strip("_").lower() for p in parts)


def _covered_columns(context: Optional[QueryContext]) -> set:
    """Columns already leading an existing index."""
    if context is None:
        return set()
    return {index.columns[0].lower() for index in context.index_info if index.columns}


def _join_key(join: Join) -> Optional[str]:
    """Column of the right-hand table used by a join condition."""
    match = _JOIN_KEYS.search(join.condition)
    if match is None:
        return None
    left_qualifier, left_column, right_qualifier, right_column = match.groups()
    if left_qualifier and left_qualifier.lower() == join.right_table.lower():
        return left_column
    return right_column


def recommend_indexes(
    query: str,
    analysis: QueryAnalysis,
    context: Optional[QueryContext] = None,
) -> List[Recommendation]:
    pattern = analysis.pattern
    if not pattern.tables:
        return []
    table = pattern.tables[0]
    covered = _covered_columns(context)

    where_columns = list(dict.fromkeys(
        c.column for c in pattern.conditions
        if c.type == "WHERE" and c.operator != "expr"
    ))
    recommendations = [
        Recommendation(
            type="index",
            priority="high",
            title=f"Create index on {column}",
            description=f"Creating an index on {column} will improve WHERE clause performance",
            implementation=f"CREATE INDEX {_index_name(column)} ON {table} ({column})",
            estimated_benefit=60,
        )
        for column in where_columns
        if column.lower() not in covered
    ]

    if len(where_columns) > 1:
        columns = ", ".join(where_columns)
        recommendations.append(Recommendation(
            type="index",
            priority="medium",
            title=f"Create composite index on ({columns})",
            description="A composite index can optimize multiple WHERE conditions",
            implementation=f"CREATE INDEX {_index_name('composite', table)} ON {table} ({columns})",
            estimated_benefit=75,
        ))

    for join in pattern.joins:
        key = _join_key(join)
        if key is None or key.lower() in covered:
            continue
        recommendations.append(Recommendation(
            type="index",
            priority="medium",
            title=f"Create index on join key {join.right_table}.{key}",
            description=f"Indexing {key} lets the join probe {join.right_table} instead of scanning it",
            implementation=f"CREATE INDEX {_index_name(join.right_table, key)} ON {join.right_table} ({key})",
            estimated_benefit=55,
        ))

    order_columns = [o.column for o in pattern.order_by]
    if order_columns and order_columns[0].lower() not in covered:
        recommendations.append(Recommendation(
            type="index",
            priority="medium",
            title="Create index for ORDER BY",
            description="Index on ORDER BY columns will eliminate sorting",
            implementation=f"CREATE INDEX {_index_name('order', table)} ON {table} ({', '.join(order_columns)})",
            estimated_benefit=50,
        ))

    return recommendations


def recommend_rewrites(query: str, analysis: QueryAnalysis) -> List[Recommendation]:
    text = query.lower()
    pattern = analysis.pattern
    recommendations = []

    if "exists" in text:
        recommendations.append(Recommendation(
            type="query_rewrite",
            priority="high",
            title="Convert EXISTS to JOIN",
            description="Converting EXISTS subqueries to JOINs can improve performance",
            implementation="Rewrite EXISTS subquery as INNER JOIN",
            estimated_benefit=40,
        ))
    if "distinct" in text:
        recommendations.append(Recommendation(
            type="query_rewrite",
            priority="medium",
            title="Optimize DISTINCT usage",
            description="Consider using GROUP BY instead of DISTINCT when possible",
            implementation="Replace DISTINCT with GROUP BY",
            estimated_benefit=25,
        ))
    if pattern.order_by and pattern.limit:
        recommendations.append(Recommendation(
            type="query_rewrite",
            priority="medium",
            title="Optimize ORDER BY with LIMIT",
            description="Consider using TOP-N optimization for ORDER BY with LIMIT",
            implementation="Use heap-based sorting for limited results",
            estimated_benefit=35,
        ))
    return recommendations


def recommend_configuration(
    query: str,
    analysis: QueryAnalysis,
    context: Optional[QueryContext] = None,
) -> List[Recommendation]:
    recommendations = []
    if analysis.resource_usage.estimated_memory > 1024:
        recommendations.append(Recommendation(
            type="configuration",
            priority="high",
            title="Increase memory allocation",
            description="Query requires more memory than currently allocated",
            implementation="Increase max_memory setting to at least 2GB",
            estimated_benefit=30,
        ))
    if analysis.complexity.score > 50:
        recommendations.append(Recommendation(
            type="configuration",
            priority="medium",
            title="Enable parallel processing",
            description="Complex queries can benefit from parallel execution",
            implementation="Set max_parallel_workers to match CPU cores",
            estimated_benefit=45,
        ))
    if context is not None and context.system_load.memory_usage > 80 and analysis.resource_usage.estimated_memory > 512:
        recommendations.append(Recommendation(
            type="configuration",
            priority="medium",
            title="Schedule memory-heavy query off-peak",
            description="Memory usage is already high and this query needs a large working set",
            implementation="Run during low-load windows or raise the memory limit of the target node",
            estimated_benefit=20,
        ))
    return recommendations
