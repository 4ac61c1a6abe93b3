"""
Deploy Site Example - Run the Pipelines of Configured Targets
===============================================================

Loads ``deployer.yaml`` (see deployer.yaml.example), runs one deployment
per requested target and prints what changed.

Usage:
    python examples/deploy_site.py                      # every target
    python examples/deploy_site.py site1                # one target
    python examples/deploy_site.py site1 --reprocess    # report every file again
"""

from __future__ import annotations

import asyncio
import sys

from deployer import Deployer
from deployer.core.config import load_config
from deployer.core.logging import configure_logging
from deployer.core.models import Deployment


def _print_deployment(deployment: Deployment) -> None:
    print(f"\n[{deployment.target_id}] {deployment.status.value.upper()}")
    if deployment.status_details:
        print(f"  {deployment.status_details}")
    print(f"  revision: {deployment.previous_revision or '-'} -> {deployment.revision or '-'}")

    for execution in deployment.processor_executions:
        print(f"  {execution.processor_name:<16} {execution.status.value:<8} {execution.status_details or ''}")

    change_set = deployment.change_set
    for label, files in (
        ("created", change_set.created_files),
        ("updated", change_set.updated_files),
        ("deleted", change_set.deleted_files),
    ):
        for path in sorted(files):
            print(f"    {label:<8} {path}")


async def main(argv: list[str]) -> int:
    config = load_config()
    configure_logging(config)

    params = {"reprocess_all_files": "--reprocess" in argv}
    target_ids = [arg for arg in argv if not arg.startswith("--")]

    async with Deployer(config) as deployer:
        if target_ids:
            deployments = [await deployer.deploy(t, params=params) for t in target_ids]
        else:
            deployments = list((await deployer.deploy_all(params=params)).values())

    for deployment in deployments:
        _print_deployment(deployment)

    return 0 if all(d.status.value == "success" for d in deployments) else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
