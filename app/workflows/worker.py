"""Temporal worker entrypoint. Run with: python -m app.workflows.worker"""
import asyncio
import logging

from temporalio.client import Client
from temporalio.worker import Worker

from app.config import settings
from app.workflows.activities import grant_account_monthly_credits, list_billable_accounts
from app.workflows.monthly_grants import MonthlyGrantWorkflow

logger = logging.getLogger(__name__)


async def main() -> None:
    logging.basicConfig(level=settings.log_level)
    client = await Client.connect(settings.temporal_host)

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=[MonthlyGrantWorkflow],
        activities=[list_billable_accounts, grant_account_monthly_credits],
    )

    logger.info("Worker started on task queue: %s", settings.temporal_task_queue)
    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
