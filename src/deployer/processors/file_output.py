"""
deployer.processors.file_output - Deployment Summary Output
=============================================================

Appends one JSON line per deployment to ``<output_folder>/<target_id>-deployments.log``
so operators can see what each run delivered without a database.

    {"deployment_id": "dep-...", "target_id": "site1", "revision": "3f2a...",
     "created_files": [...], "updated_files": [...], "deleted_files": [...], ...}

Runs only when there is something to report (non-empty ChangeSet). Errors
are not fatal by default: a summary that could not be written never blocks
content from being deployed.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from deployer.core.exceptions import ProcessorError
from deployer.core.models import ChangeSet, ChangeSetUpdate, Deployment, PathFilter
from deployer.processors.base import Processor


logger = structlog.get_logger()


class FileOutputProcessor(Processor):
    """Writes a JSON summary line of each deployment to a per-target file."""

    def __init__(
        self,
        target_id: str,
        output_folder: Union[str, Path],
        path_filter: Optional[PathFilter] = None,
        fails_deployment_on_error: Optional[bool] = None,
        name: str = "file_output",
    ) -> None:
        super().__init__(
            name=name,
            path_filter=path_filter,
            fails_deployment_on_error=fails_deployment_on_error,
        )
        self._target_id = target_id
        self._output_folder = Path(output_folder)

    @property
    def output_file(self) -> Path:
        return self._output_folder / f"{self._target_id}-deployments.log"

    def should_execute(self, deployment: Deployment, change_set: ChangeSet) -> bool:
        return deployment.is_running and not change_set.is_empty

    async def execute(
        self,
        deployment: Deployment,
        change_set: ChangeSet,
        params: dict[str, Any],
    ) -> ChangeSetUpdate:
        record = {
            "deployment_id": deployment.deployment_id,
            "target_id": deployment.target_id,
            "previous_revision": deployment.previous_revision,
            "revision": deployment.revision,
            "started_at": deployment.started_at.isoformat() if deployment.started_at else None,
            "created_files": sorted(change_set.created_files),
            "updated_files": sorted(change_set.updated_files),
            "deleted_files": sorted(change_set.deleted_files),
            "params": params,
        }

        path = self.output_file
        try:
            self._output_folder.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError as e:
            raise ProcessorError(
                message=f"Failed to write deployment output to {path}",
                processor_name=self.name,
                error_code="OUTPUT_WRITE_FAILED",
                details={"path": str(path), "error": str(e)},
            ) from e

        self._logger.info("deployment_output_written", path=str(path), **change_set.summary())
        return ChangeSetUpdate.unchanged(
            details=f"Wrote {len(change_set.all_files)} changed files to {path}",
        )
