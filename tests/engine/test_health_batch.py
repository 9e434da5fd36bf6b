# tests/engine/test_health_batch.py
"""Tests for the narrowing batch fetch of recent runs."""

from typing import Any


def _seed(client: Any, dag_ids: list[str], runs_each: int = 3) -> None:
    from flowdeck.contracts.entities import DagRun

    for dag_id in dag_ids:
        client.runs[dag_id] = [DagRun(dag_id, f"{dag_id}-r{i}", state="success") for i in range(runs_each)]


class TestFetchRecentRuns:
    """Batch rounds, truncation and termination."""

    def test_single_round_when_everything_returned(self, fake_client: Any) -> None:
        from flowdeck.engine.health_batch import fetch_recent_runs

        _seed(fake_client, ["a", "b"])

        result = fetch_recent_runs(fake_client, ["a", "b"], limit_per_dag=2)

        assert result.rounds == 1
        assert result.unresolved == []
        assert [r.dag_run_id for r in result.runs["a"]] == ["a-r0", "a-r1"]

    def test_missing_dags_are_re_requested(self, fake_client: Any) -> None:
        """A DAG crowded out of the first response is asked for alone next."""
        from flowdeck.engine.health_batch import fetch_recent_runs

        _seed(fake_client, ["a", "b"])
        original = fake_client.list_dag_runs_batch
        responses = iter([["a"], ["b"]])

        def crowded(dag_ids: Any, limit_per_dag: int) -> Any:
            allowed = next(responses)
            return [run for run in original(dag_ids, limit_per_dag) if run.dag_id in allowed]

        fake_client.list_dag_runs_batch = crowded

        result = fetch_recent_runs(fake_client, ["a", "b"], limit_per_dag=3)

        assert result.rounds == 2
        assert fake_client.calls_to("list_dag_runs_batch")[1] == (("b",), 3)
        assert len(result.runs["b"]) == 3

    def test_always_omitted_dag_gets_empty_list(self, fake_client: Any) -> None:
        from flowdeck.engine.health_batch import fetch_recent_runs

        _seed(fake_client, ["a", "b", "c"])
        fake_client.omit_from_batch = {"c"}

        result = fetch_recent_runs(fake_client, ["a", "b", "c"], limit_per_dag=3)

        assert result.runs["c"] == []
        assert result.unresolved == ["c"]
        # Round two resolves nothing new and stops the loop
        assert result.rounds == 2

    def test_terminates_within_budget(self, fake_client: Any) -> None:
        """Even a server that returns one DAG per call stops after N + 1 rounds."""
        from flowdeck.engine.health_batch import fetch_recent_runs

        dag_ids = [f"dag{i}" for i in range(5)]
        _seed(fake_client, dag_ids)
        original = fake_client.list_dag_runs_batch

        def one_at_a_time(ids: Any, limit_per_dag: int) -> Any:
            return [run for run in original(ids, limit_per_dag) if run.dag_id == ids[0]]

        fake_client.list_dag_runs_batch = one_at_a_time

        result = fetch_recent_runs(fake_client, dag_ids, limit_per_dag=3)

        assert result.rounds <= len(dag_ids) + 1
        assert set(result.runs) == set(dag_ids)

    def test_explicit_round_budget(self, fake_client: Any) -> None:
        from flowdeck.engine.health_batch import fetch_recent_runs

        _seed(fake_client, ["a", "b"])
        original = fake_client.list_dag_runs_batch
        fake_client.list_dag_runs_batch = lambda ids, limit: [
            run for run in original(ids, limit) if run.dag_id == ids[0]
        ]

        result = fetch_recent_runs(fake_client, ["a", "b"], limit_per_dag=3, max_rounds=1)

        assert result.rounds == 1
        assert result.unresolved == ["b"]
        assert result.runs["b"] == []

    def test_duplicates_and_unrequested_runs_ignored(self, fake_client: Any) -> None:
        from flowdeck.engine.health_batch import fetch_recent_runs

        _seed(fake_client, ["a", "b"])
        original = fake_client.list_dag_runs_batch
        fake_client.list_dag_runs_batch = lambda ids, limit: original([*ids, "b"], limit)

        result = fetch_recent_runs(fake_client, ["a", "a"], limit_per_dag=3)

        assert set(result.runs) == {"a"}

    def test_no_dags_makes_no_calls(self, fake_client: Any) -> None:
        from flowdeck.engine.health_batch import fetch_recent_runs

        result = fetch_recent_runs(fake_client, [], limit_per_dag=3)

        assert result.runs == {}
        assert fake_client.calls == []
