"""Per-account usage ledger: quota checks, usage commits and repo sets.

An account may analyse a pull request only while both ceilings hold::

    loc_count + projected_lines <= loc_limit
    repos_count                 <= repos_limit

The check and the later commit are not atomic.  Two
concurrent analyses for the same account can both pass the check and
both commit, overshooting ``loc_limit`` by at most one run.  Each commit
is a single ``UPDATE ... SET loc_count = loc_count + :delta`` so no
increment is ever lost.

Quota notices are posted back to the pull request on a best-effort basis:
a failed post is logged and never changes the decision.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from diff_engine.models.account import Account, PlanTier, Usage, resolve_plan
from diff_engine.models.events import PullRequestTarget
from diff_engine.state.repository import AccountRepository, normalize_repo_names
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from summary_engine.engines.summarizer import BANNER_TITLE, DEFAULT_FEEDBACK_URL

from webhook_api.services.github_client import PullRequestHost

logger = logging.getLogger(__name__)

CONTACT_TEMPLATE = "If this is a mistake, please [contact us]({url}) and we will fix it ASAP"


class QuotaViolation(str, Enum):
    """Why an analysis was refused."""

    LOC = "loc"
    REPOS = "repos"
    ACCOUNT_NOT_FOUND = "account_not_found"


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check.

    ``account`` is populated whenever the owning account was found,
    including refusals, so callers can report against it.
    """

    allowed: bool
    account: Account | None = None
    violation: QuotaViolation | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def within_loc_limit(usage: Usage, projected_lines: int) -> bool:
    return usage.loc_count + projected_lines <= usage.loc_limit


def within_repo_limit(usage: Usage) -> bool:
    return usage.repos_count <= usage.repos_limit


def loc_limit_notice(usage: Usage, feedback_url: str = DEFAULT_FEEDBACK_URL) -> str:
    return "\n".join(
        [
            BANNER_TITLE,
            f"You have reached the limit of {usage.loc_limit} lines of code for this month.",
            "Wait until the next month to resume the service or upgrade your subscription.",
            CONTACT_TEMPLATE.format(url=feedback_url),
        ]
    )


def repo_limit_notice(usage: Usage, feedback_url: str = DEFAULT_FEEDBACK_URL) -> str:
    return "\n".join(
        [
            BANNER_TITLE,
            f"You have reached the limit of {usage.repos_limit} repos.",
            "Please remove a repo from your account to resume the service.",
            CONTACT_TEMPLATE.format(url=feedback_url),
        ]
    )


class UsageLedger:
    """Quota enforcement and usage accounting for one request.

    Parameters
    ----------
    session:
        The request's ``AsyncSession``.  Mutating methods commit it.
    feedback_url:
        Contact link included in quota notices.
    """

    def __init__(self, session: AsyncSession, *, feedback_url: str = DEFAULT_FEEDBACK_URL) -> None:
        self._session = session
        self._accounts = AccountRepository(session)
        self._feedback_url = feedback_url

    @property
    def accounts(self) -> AccountRepository:
        return self._accounts

    # ------------------------------------------------------------------
    # Analysis gate
    # ------------------------------------------------------------------

    async def check_quota(
        self,
        target: PullRequestTarget,
        projected_lines: int,
        host: PullRequestHost | None = None,
    ) -> QuotaDecision:
        """Decide whether *target* may consume *projected_lines* more lines.

        The owning account is found through its repo set.  When both
        ceilings are violated the line-count violation is reported.  If
        *host* is given, a refusal is explained on the pull request.
        """
        account = await self._accounts.find_by_repo(target.full_name)
        if account is None:
            logger.warning("No account owns %s", target.full_name)
            return QuotaDecision(
                allowed=False,
                violation=QuotaViolation.ACCOUNT_NOT_FOUND,
                message="Account not found.",
            )

        usage = account.usage
        if not within_loc_limit(usage, projected_lines):
            logger.info(
                "Account %s over line limit: %d + %d > %d",
                account.id,
                usage.loc_count,
                projected_lines,
                usage.loc_limit,
            )
            decision = QuotaDecision(
                allowed=False,
                account=account,
                violation=QuotaViolation.LOC,
                message=loc_limit_notice(usage, self._feedback_url),
            )
        elif not within_repo_limit(usage):
            logger.info(
                "Account %s over repo limit: %d > %d",
                account.id,
                usage.repos_count,
                usage.repos_limit,
            )
            decision = QuotaDecision(
                allowed=False,
                account=account,
                violation=QuotaViolation.REPOS,
                message=repo_limit_notice(usage, self._feedback_url),
            )
        else:
            return QuotaDecision(allowed=True, account=account)

        if host is not None and decision.message:
            await self._post_notice(host, target, decision.message)
        return decision

    async def commit_usage(self, account_id: str, lines: int) -> bool:
        """Add *lines* to the account's consumed line count.

        Returns ``False`` if the write failed; failures are logged.
        """
        try:
            await self._accounts.increment_loc(account_id, lines)
            await self._session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to commit %d line(s) for account %s", lines, account_id)
            await self._session.rollback()
            return False
        logger.info("Committed %d line(s) for account %s", lines, account_id, extra={"account_id": account_id})
        return True

    # ------------------------------------------------------------------
    # Accounts and repo sets
    # ------------------------------------------------------------------

    async def ensure_account(self, provider_id: int, login: str | None = None) -> Account:
        """Return the account for *provider_id*, creating it with zero limits."""
        account, created = await self._accounts.get_or_create(provider_id, login)
        if created:
            await self._session.commit()
        return account

    async def add_repo(
        self,
        account_id: str,
        repo_names: Iterable[str],
        *,
        pending_removals: int = 0,
    ) -> bool:
        """Add *repo_names* to the account's repo set if the limit allows.

        ``pending_removals`` is the number of repositories the same event
        is removing.  When positive, one extra slot is granted so a swap
        at the limit is not refused before the removal lands.

        Returns
        -------
        bool
            ``True`` if the names were added (or were all present already),
            ``False`` if the account is missing, the limit refuses the add,
            or the write failed.
        """
        account = await self._accounts.get(account_id)
        if account is None:
            logger.warning("Cannot add repos: account %s not found", account_id)
            return False

        present = set(account.repos)
        new_names = [name for name in normalize_repo_names(repo_names) if name not in present]
        if not new_names:
            return True

        slack = min(pending_removals, 1)
        projected = account.usage.repos_count + len(new_names)
        if projected > account.usage.repos_limit + slack:
            logger.info(
                "Refusing to add %d repo(s) to account %s: %d > %d",
                len(new_names),
                account_id,
                projected,
                account.usage.repos_limit + slack,
            )
            return False

        try:
            added = await self._accounts.add_repos(account_id, new_names)
            await self._session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to add repos to account %s", account_id)
            await self._session.rollback()
            return False
        logger.info("Added %d repo(s) to account %s", added, account_id)
        return True

    async def remove_repo(self, account_id: str, repo_names: Iterable[str]) -> bool:
        """Remove *repo_names* from the account's repo set."""
        try:
            removed = await self._accounts.remove_repos(account_id, repo_names)
            await self._session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to remove repos from account %s", account_id)
            await self._session.rollback()
            return False
        logger.info("Removed %d repo(s) from account %s", removed, account_id)
        return True

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def apply_plan(self, account_id: str, plan_name: str | None) -> PlanTier | None:
        """Overwrite the account's plan and ceilings from *plan_name*.

        Consumed counters are left untouched.  Returns the applied tier,
        or ``None`` if the account does not exist.
        """
        tier, limits = resolve_plan(plan_name)
        found = await self._accounts.set_plan(
            account_id,
            tier,
            repos_limit=limits.repos_limit,
            loc_limit=limits.loc_limit,
        )
        if not found:
            await self._session.rollback()
            logger.warning("Cannot apply plan %r: account %s not found", plan_name, account_id)
            return None
        await self._session.commit()
        logger.info("Applied plan %s to account %s", tier.value, account_id, extra={"account_id": account_id})
        return tier

    async def link_billing(
        self,
        account_id: str,
        *,
        customer_id: str | None,
        subscription_id: str | None,
    ) -> None:
        await self._accounts.set_billing_ids(
            account_id,
            customer_id=customer_id,
            subscription_id=subscription_id,
        )
        await self._session.commit()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _post_notice(host: PullRequestHost, target: PullRequestTarget, message: str) -> None:
        try:
            await host.create_comment(target.repo_owner, target.repo_name, target.pull_number, message)
        except Exception:
            logger.exception("Failed to post quota notice on %s#%d", target.full_name, target.pull_number)
