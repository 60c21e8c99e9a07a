"""Celery tasks for case-judge linking."""

from typing import Any

from ..db import close_all_connections
from ..logging import get_context_logger
from ..worker import app
from .errors import LinkingError
from .pipeline import run_linking_pipeline

logger = get_context_logger(__name__)


@app.task(name="judgelink.linking.tasks.run_linking", bind=True)
def run_linking(self, dry_run: bool = False) -> dict[str, Any]:
    """Scheduled linking run.

    Args:
        dry_run: Resolve and report without writing

    Returns:
        Report dictionary (or a failure status when the run could not start
        or the case source failed)
    """
    import asyncio

    async def run():
        try:
            report = await run_linking_pipeline(dry_run=dry_run)
            return {"status": "completed", "report": report.model_dump(mode="json")}
        except LinkingError as e:
            logger.error(f"Linking run failed: {e}")
            return {"status": "failed", "error": str(e)}
        finally:
            await close_all_connections()

    return asyncio.run(run())
