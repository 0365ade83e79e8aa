"""Stage dependency graph utilities using graphlib."""

from collections.abc import Iterator
from graphlib import CycleError as GraphlibCycleError
from graphlib import TopologicalSorter

from shipline.exceptions import CycleError, PipelineConfigError


class StageGraph:
    """Wraps TopologicalSorter for stage dependency management."""

    def __init__(self) -> None:
        self._graph: dict[str, list[str]] = {}

    def __contains__(self, stage_id: str) -> bool:
        return stage_id in self._graph

    def __len__(self) -> int:
        return len(self._graph)

    @property
    def stage_ids(self) -> list[str]:
        return list(self._graph)

    def add_stage(self, stage_id: str, depends_on: list[str] | None = None) -> None:
        """Add a stage with optional dependencies.

        Raises CycleError, leaving the graph untouched, if the new edges
        would close a cycle. Dependencies may name stages added later.
        """
        if stage_id in self._graph:
            raise PipelineConfigError(f"Duplicate stage id: {stage_id}")
        deps = list(dict.fromkeys(depends_on or []))
        if stage_id in deps:
            raise CycleError(f"Stage {stage_id} depends on itself", cycle=[stage_id, stage_id])

        candidate = {**self._graph, stage_id: deps}
        try:
            TopologicalSorter(candidate).prepare()
        except GraphlibCycleError as exc:
            cycle = [str(node) for node in exc.args[1]]
            raise CycleError(
                f"Adding stage {stage_id} creates a cycle: {' -> '.join(cycle)}",
                cycle=cycle,
            ) from exc
        self._graph[stage_id] = deps

    def predecessors(self, stage_id: str) -> list[str]:
        return list(self._graph[stage_id])

    def descendants(self, stage_id: str) -> set[str]:
        """All stages that depend on ``stage_id``, directly or transitively."""
        found: set[str] = set()
        frontier = [stage_id]
        while frontier:
            current = frontier.pop()
            for candidate, deps in self._graph.items():
                if current in deps and candidate not in found:
                    found.add(candidate)
                    frontier.append(candidate)
        return found

    def validate(self) -> None:
        """Check that every dependency names a known stage."""
        for stage_id, deps in self._graph.items():
            missing = [dep for dep in deps if dep not in self._graph]
            if missing:
                raise PipelineConfigError(
                    f"Stage {stage_id} depends on unknown stage(s): {', '.join(missing)}"
                )

    def batches(self) -> Iterator[tuple[str, ...]]:
        """Yield readiness batches lazily; restarts from scratch on each call.

        A batch is released once every stage of the previous batch has been
        yielded, so callers must finish a batch before asking for the next.
        """
        self.validate()
        sorter = TopologicalSorter(self._graph)
        sorter.prepare()
        while sorter.is_active():
            batch = tuple(sorted(sorter.get_ready()))
            yield batch
            sorter.done(*batch)

    def order(self) -> list[str]:
        """Return stages in topological order, batch by batch."""
        return [stage_id for batch in self.batches() for stage_id in batch]
