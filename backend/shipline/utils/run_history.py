"""Append-only history of finished pipeline runs."""

import json
from pathlib import Path
from typing import Any

from shipline.models.run import PipelineRun


class RunHistory:
    """Records one JSON line per finished run, keyed by run id."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def append(self, run: PipelineRun) -> None:
        """Append a record for ``run``."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        record = run.model_dump(mode="json", exclude={"stages", "variables"})
        record["stages"] = [
            stage.model_dump(mode="json", exclude={"action", "env"}) for stage in run.stages
        ]
        with open(self.path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False) + "\n")

    def records(self) -> list[dict[str, Any]]:
        """Return every recorded run, oldest first."""
        if not self.path.exists():
            return []
        with open(self.path, "r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]

    def get(self, run_id: str) -> dict[str, Any] | None:
        """Return the latest record for ``run_id``."""
        matches = [record for record in self.records() if record.get("id") == run_id]
        return matches[-1] if matches else None
