# orderhub/jobs/tracking_refresh.py
# python -m orderhub.jobs.tracking_refresh --workspace 1   (omit --workspace for all active workspaces)
from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from orderhub.core.config import get_settings
from orderhub.core.logging import setup_logging
from orderhub.db.session import AsyncSessionLocal, close_engines
from orderhub.services.runtime import Runtime
from orderhub.services.tracking_refresh import RefreshSummary


async def run_once(runtime: Runtime, workspace_id: Optional[int] = None) -> List[RefreshSummary]:
    refresher = runtime.refresher()
    if workspace_id is not None:
        return [await refresher.refresh_tracking(workspace_id, trigger="cli")]
    return await refresher.refresh_all(trigger="cli")


async def main(workspace_id: Optional[int] = None) -> None:
    runtime = Runtime(AsyncSessionLocal)
    try:
        for s in await run_once(runtime, workspace_id):
            print(
                f"[tracking_refresh] ws={s.workspace_id} scanned={s.total_scanned} "
                f"updated={s.total_updated} failed={s.total_failed}"
            )
    finally:
        await runtime.aclose()
        await close_engines()


def run_cli(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Refresh courier tracking for open shipments")
    parser.add_argument("--workspace", type=int, default=None, help="workspace id (default: all active)")
    args = parser.parse_args(argv)
    setup_logging(get_settings().LOG_LEVEL)
    asyncio.run(main(args.workspace))


if __name__ == "__main__":
    run_cli()
