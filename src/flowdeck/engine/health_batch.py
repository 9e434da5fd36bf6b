# src/flowdeck/engine/health_batch.py
"""Recent-run (health window) fetch with retry narrowing.

The batch run endpoint shares one page limit across every requested DAG,
so busy DAGs can crowd others out of the response. Each round re-requests
only the DAGs still missing. The loop stops when:
- every DAG is resolved, or
- a round resolves nothing new (the server keeps omitting the rest), or
- the round budget (number of DAGs + 1) is spent.

DAGs still unresolved at that point are recorded with an empty run list.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from flowdeck.client.protocol import OrchestrationClient
from flowdeck.contracts.entities import DagRun

logger = structlog.get_logger(__name__)


@dataclass
class RecentRunsResult:
    """Outcome of a narrowing batch fetch."""

    runs: dict[str, list[DagRun]] = field(default_factory=dict)
    rounds: int = 0
    unresolved: list[str] = field(default_factory=list)


def fetch_recent_runs(
    client: OrchestrationClient,
    dag_ids: Sequence[str],
    limit_per_dag: int,
    max_rounds: int | None = None,
) -> RecentRunsResult:
    """Fetch the newest `limit_per_dag` runs of every DAG in `dag_ids`.

    Args:
        client: Client used for the batch calls
        dag_ids: DAGs to resolve (duplicates ignored)
        limit_per_dag: Size of each DAG's health window
        max_rounds: Round budget; defaults to len(dag_ids) + 1

    Returns:
        RecentRunsResult with an entry (possibly empty) for every DAG

    Raises:
        ClientError: If a batch call fails; partial rounds are discarded
    """
    missing = list(dict.fromkeys(dag_ids))
    budget = max_rounds if max_rounds is not None else len(missing) + 1
    result = RecentRunsResult()

    while missing and result.rounds < budget:
        result.rounds += 1
        requested = set(missing)
        grouped: dict[str, list[DagRun]] = {}
        for run in client.list_dag_runs_batch(missing, limit_per_dag):
            if run.dag_id in requested:
                grouped.setdefault(run.dag_id, []).append(run)

        if not grouped:
            break
        for dag_id, runs in grouped.items():
            result.runs[dag_id] = runs[:limit_per_dag]
        missing = [dag_id for dag_id in missing if dag_id not in grouped]

    if missing:
        logger.debug(
            "Batch run fetch left DAGs unresolved; recording no runs",
            unresolved=len(missing),
            rounds=result.rounds,
        )
    for dag_id in missing:
        result.runs[dag_id] = []
    result.unresolved = missing
    return result
