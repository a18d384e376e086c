"""Start the monthly grant cron workflow. Run with: python -m app.workflows.schedule"""
import asyncio
import logging

from temporalio.client import Client
from temporalio.exceptions import WorkflowAlreadyStartedError

from app.config import settings
from app.workflows.monthly_grants import MonthlyGrantWorkflow

logger = logging.getLogger(__name__)

MONTHLY_GRANT_WORKFLOW_ID = "monthly-credit-grants"
MONTHLY_GRANT_CRON = "0 0 1 * *"


async def main() -> None:
    logging.basicConfig(level=settings.log_level)
    client = await Client.connect(settings.temporal_host)

    try:
        await client.start_workflow(
            MonthlyGrantWorkflow.run,
            id=MONTHLY_GRANT_WORKFLOW_ID,
            task_queue=settings.temporal_task_queue,
            cron_schedule=MONTHLY_GRANT_CRON,
        )
    except WorkflowAlreadyStartedError:
        logger.info("Monthly grant workflow already scheduled")
        return

    logger.info("Scheduled %s with cron %r", MONTHLY_GRANT_WORKFLOW_ID, MONTHLY_GRANT_CRON)


if __name__ == "__main__":
    asyncio.run(main())
