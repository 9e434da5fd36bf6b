# tests/core/test_ordering.py
"""Tests for grouped topological ordering of task dependencies."""

from hypothesis import given
from hypothesis import strategies as st

task_ids = st.sampled_from(
    ["a", "b", "c", "extract.users", "extract.orders", "load.warehouse", "load.cache", "z"]
)


@st.composite
def acyclic_dependencies(draw: st.DrawFn) -> dict[str, list[str]]:
    """Random DAG: edges only go from earlier to later ids in a drawn order."""
    ids = draw(st.lists(task_ids, min_size=1, max_size=8, unique=True))
    edges: dict[str, list[str]] = {task_id: [] for task_id in ids}
    for index, task_id in enumerate(ids):
        later = ids[index + 1 :]
        if later:
            edges[task_id] = draw(st.lists(st.sampled_from(later), unique=True, max_size=3))
    return edges


class TestTaskGroup:
    """Group derivation from task ids."""

    def test_prefix_before_first_dot(self) -> None:
        from flowdeck.core.ordering import task_group

        assert task_group("extract.users.daily") == "extract"

    def test_ungrouped_task_is_its_own_group(self) -> None:
        from flowdeck.core.ordering import task_group

        assert task_group("cleanup") == "cleanup"


class TestInvertDependencies:
    """Adjacency inversion."""

    def test_inverts_and_includes_every_task(self) -> None:
        from flowdeck.core.ordering import invert_dependencies

        inverted = invert_dependencies({"start": ["t2", "t1"], "t1": ["end"], "t2": ["end"]})

        assert inverted == {"start": [], "t1": ["start"], "t2": ["start"], "end": ["t1", "t2"]}

    def test_double_inversion_is_identity_on_sorted_input(self) -> None:
        from flowdeck.core.ordering import invert_dependencies

        edges = {"a": ["b", "c"], "b": ["c"], "c": []}
        assert invert_dependencies(invert_dependencies(edges)) == edges


class TestTopologicalSort:
    """Deterministic grouped Kahn ordering."""

    def test_empty_input(self) -> None:
        from flowdeck.core.ordering import topological_sort

        assert topological_sort([]) == []

    def test_chain(self) -> None:
        """A chain keeps its dependency order regardless of names."""
        from flowdeck.core.ordering import topological_sort

        tasks = [("c", ["b"]), ("b", ["a"]), ("a", [])]
        assert topological_sort(tasks) == ["c", "b", "a"]

    def test_diamond(self) -> None:
        from flowdeck.core.ordering import topological_sort

        tasks = {"start": ["t1", "t2"], "t1": ["end"], "t2": ["end"], "end": []}
        assert topological_sort(tasks) == ["start", "t1", "t2", "end"]

    def test_task_waits_for_all_upstream(self) -> None:
        """'join' is not emitted until both of its upstream tasks are."""
        from flowdeck.core.ordering import topological_sort

        tasks = {"a": ["join"], "b": ["b2"], "b2": ["join"], "join": []}
        order = topological_sort(tasks)
        assert order.index("join") > order.index("a")
        assert order.index("join") > order.index("b2")

    def test_group_is_emitted_contiguously(self) -> None:
        """Available tasks of the current group are drained before switching."""
        from flowdeck.core.ordering import topological_sort

        tasks = {"b.a": ["b.z"], "b.z": [], "b-c": []}
        # 'b-c' sorts before 'b.z' as a string but belongs to a later group
        assert topological_sort(tasks) == ["b.a", "b.z", "b-c"]

    def test_downstream_only_tasks_are_included(self) -> None:
        from flowdeck.core.ordering import topological_sort

        assert topological_sort([("a", ["b"])]) == ["a", "b"]

    def test_cycle_appends_leftovers_sorted(self) -> None:
        """A cycle never raises; unreachable tasks are appended alphabetically."""
        from flowdeck.core.ordering import topological_sort

        tasks = {"root": ["y"], "y": ["x"], "x": ["y"]}
        assert topological_sort(tasks) == ["root", "x", "y"]

    @given(acyclic_dependencies())
    def test_every_task_follows_its_upstream(self, edges: dict[str, list[str]]) -> None:
        from flowdeck.core.ordering import topological_sort

        order = topological_sort(edges)
        position = {task_id: index for index, task_id in enumerate(order)}

        assert sorted(order) == sorted(edges)
        for task_id, downstream in edges.items():
            for other in downstream:
                assert position[task_id] < position[other]

    @given(acyclic_dependencies())
    def test_deterministic_under_input_reordering(self, edges: dict[str, list[str]]) -> None:
        from flowdeck.core.ordering import topological_sort

        reversed_pairs = [(k, list(reversed(v))) for k, v in reversed(list(edges.items()))]
        assert topological_sort(edges) == topological_sort(reversed_pairs)


class TestFindCycle:
    """Cycle detection via networkx."""

    def test_acyclic_returns_none(self) -> None:
        from flowdeck.core.ordering import find_cycle

        assert find_cycle({"a": ["b"], "b": []}) is None

    def test_reports_cycle_edges(self) -> None:
        from flowdeck.core.ordering import find_cycle

        cycle = find_cycle({"a": ["b"], "b": ["a"]})
        assert cycle is not None
        assert set(cycle) == {("a", "b"), ("b", "a")}
