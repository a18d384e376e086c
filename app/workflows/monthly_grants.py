"""
MonthlyGrantWorkflow resets subscription credits at the start of each month.

Runs on a cron schedule (see app.workflows.schedule). Each account is granted
in its own activity so one failing account does not block the rest.
"""
from dataclasses import dataclass, field
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError

with workflow.unsafe.imports_passed_through():
    from app.workflows.activities import (
        GrantAccountInput,
        GrantAccountOutput,
        grant_account_monthly_credits,
        list_billable_accounts,
    )


@dataclass
class MonthlyGrantResult:
    accounts: int = 0
    granted: int = 0
    already_granted: int = 0
    failed: list[str] = field(default_factory=list)


@workflow.defn
class MonthlyGrantWorkflow:
    @workflow.run
    async def run(self) -> MonthlyGrantResult:
        # Pin the period to the run's start so retries land in the same month
        granted_at = workflow.now().isoformat()

        account_ids: list[str] = await workflow.execute_activity(
            list_billable_accounts,
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=RetryPolicy(maximum_attempts=3),
        )

        result = MonthlyGrantResult(accounts=len(account_ids))
        for account_id in account_ids:
            try:
                output: GrantAccountOutput = await workflow.execute_activity(
                    grant_account_monthly_credits,
                    GrantAccountInput(account_id=account_id, granted_at=granted_at),
                    start_to_close_timeout=timedelta(seconds=15),
                    retry_policy=RetryPolicy(maximum_attempts=5),
                )
            except ActivityError:
                workflow.logger.error("Monthly grant failed for account %s", account_id)
                result.failed.append(account_id)
                continue

            if output.already_granted:
                result.already_granted += 1
            else:
                result.granted += 1

        workflow.logger.info(
            "Monthly grants: %d accounts, %d granted, %d already granted, %d failed",
            result.accounts,
            result.granted,
            result.already_granted,
            len(result.failed),
        )
        return result
