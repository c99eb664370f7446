"""Per-request webhook pipeline.

Each request walks a linear state trail::

    RECEIVED -> AUTHENTICATED -> CLASSIFIED -> {REPO_EVENT | ANALYSIS_EVENT}
             -> QUOTA_CHECKED -> SUMMARIZED -> POSTED -> COMMITTED -> DONE

with early exits to ``REJECTED`` when the signature or payload is bad and
when the quota check refuses the analysis.  Repo events update the
account's repo set and finish without summarization.

After a successful summary the comment post and the usage commit run
concurrently.  Either may fail without affecting the other; failures are
logged and the request still completes.  ``POSTED`` and ``COMMITTED``
appear in the trail only for the side effects that succeeded.  When no
batch was explained the fallback comment is still posted, but neither the
account nor the public stats are charged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from diff_engine.chunking import Chunker
from diff_engine.events import DiffFormatError, EventRouter, parse_diff_body
from diff_engine.events.diff_payload import FORMAT_ERROR_MESSAGE
from diff_engine.filtering import FileFilter
from diff_engine.models.events import Intent, PullRequestTarget, WebhookEvent
from diff_engine.models.files import ChangedFile
from summary_engine.engines.summarizer import SummaryEngine

from webhook_api.services.github_client import PullRequestHost
from webhook_api.services.stats_service import StatsService
from webhook_api.services.usage_ledger import QuotaDecision, UsageLedger

logger = logging.getLogger(__name__)

NOTHING_TO_DO = "Nothing for me to do."
DONE_MESSAGE = "Well, done!"
BAD_REQUEST_MESSAGE = "Bad request. Signature verification failed or the event is malformed."
UPSTREAM_FAILURE_MESSAGE = "Could not fetch the pull request files."

HostFactory = Callable[[int], Awaitable[PullRequestHost]]


class PipelineState(str, Enum):
    RECEIVED = "received"
    AUTHENTICATED = "authenticated"
    CLASSIFIED = "classified"
    REPO_EVENT = "repo_event"
    ANALYSIS_EVENT = "analysis_event"
    QUOTA_CHECKED = "quota_checked"
    SUMMARIZED = "summarized"
    POSTED = "posted"
    COMMITTED = "committed"
    DONE = "done"
    REJECTED = "rejected"


@dataclass
class WebhookOutcome:
    """HTTP status, JSON body and the state trail of one request."""

    status_code: int
    body: dict[str, Any]
    intent: Intent | None = None
    trail: list[PipelineState] = field(default_factory=list)

    @property
    def state(self) -> PipelineState | None:
        return self.trail[-1] if self.trail else None


class WebhookOrchestrator:
    """Drive one inbound event through classification, quota and summary.

    Parameters
    ----------
    router:
        Authenticates and classifies webhook bodies.
    ledger:
        Quota checks and usage accounting for the request's session.
    summary_engine:
        Turns file batches into the final comment text.
    host_factory:
        Coroutine returning a host-API handle for an installation id.
    stats:
        Public run counters.
    """

    def __init__(
        self,
        *,
        router: EventRouter,
        ledger: UsageLedger,
        summary_engine: SummaryEngine,
        host_factory: HostFactory,
        stats: StatsService,
        file_filter: FileFilter | None = None,
        chunker: Chunker | None = None,
    ) -> None:
        self._router = router
        self._ledger = ledger
        self._summary = summary_engine
        self._host_factory = host_factory
        self._stats = stats
        self._filter = file_filter or FileFilter()
        self._chunker = chunker or Chunker()

    # ------------------------------------------------------------------
    # Webhook path
    # ------------------------------------------------------------------

    async def handle_webhook(self, signature: str | None, raw_body: bytes) -> WebhookOutcome:
        trail = [PipelineState.RECEIVED]
        event = self._router.route(signature, raw_body)

        if event.intent is Intent.BAD_REQUEST:
            trail.append(PipelineState.REJECTED)
            logger.warning("Rejected webhook: bad signature or malformed event")
            return WebhookOutcome(400, {"message": BAD_REQUEST_MESSAGE}, event.intent, trail)

        trail += [PipelineState.AUTHENTICATED, PipelineState.CLASSIFIED]
        logger.info("Webhook classified as %s (action=%s)", event.intent.value, event.payload.get("action"))

        if event.intent.is_repo_event:
            trail.append(PipelineState.REPO_EVENT)
            message = await self._handle_repo_event(event)
            trail.append(PipelineState.DONE)
            return WebhookOutcome(200, {"message": message}, event.intent, trail)

        if event.intent.is_analysis and event.target is not None:
            trail.append(PipelineState.ANALYSIS_EVENT)
            return await self._handle_analysis(event, event.target, trail)

        trail.append(PipelineState.DONE)
        return WebhookOutcome(200, {"message": NOTHING_TO_DO}, event.intent, trail)

    async def _handle_repo_event(self, event: WebhookEvent) -> str:
        payload = event.payload
        sender = payload.get("sender") or {}
        sender_id = sender.get("id")
        if not isinstance(sender_id, int):
            logger.warning("Repo event without a sender id")
            return NOTHING_TO_DO

        added = _repo_names(payload.get("repositories_added"))
        removed = _repo_names(payload.get("repositories_removed"))
        account = await self._ledger.ensure_account(sender_id, sender.get("login"))

        message = "Repositories removed."
        if added:
            # The add is checked before this event's removals land.
            ok = await self._ledger.add_repo(account.id, added, pending_removals=len(removed))
            message = "Repositories added." if ok else "Repository limit reached."
        if removed:
            await self._ledger.remove_repo(account.id, removed)
        return message

    async def _handle_analysis(
        self,
        event: WebhookEvent,
        target: PullRequestTarget,
        trail: list[PipelineState],
    ) -> WebhookOutcome:
        try:
            host = await self._host_factory(target.installation_id)
            files = await host.list_files(target.repo_owner, target.repo_name, target.pull_number)
        except Exception:
            logger.exception("Failed to fetch files for %s#%d", target.full_name, target.pull_number)
            trail.append(PipelineState.DONE)
            return WebhookOutcome(200, {"message": UPSTREAM_FAILURE_MESSAGE}, event.intent, trail)

        relevant = self._filter.filter(files)
        batches = self._chunker.chunk(relevant)
        lines = total_changes(relevant)
        logger.info("Prepared %d batch(es) covering %d line(s) for %s", len(batches), lines, target.full_name)

        decision = await self._ledger.check_quota(target, lines, host)
        if not decision.allowed:
            trail.append(PipelineState.REJECTED)
            return WebhookOutcome(402, {"message": decision.message}, event.intent, trail)
        trail.append(PipelineState.QUOTA_CHECKED)

        summary = await self._summary.explain(batches)
        trail.append(PipelineState.SUMMARIZED)

        if summary.produced:
            posted, committed = await asyncio.gather(
                self._post_comment(host, target, summary.comment),
                self._record_usage(decision, lines),
            )
        else:
            logger.warning("No batch explained for %s#%d; usage not charged", target.full_name, target.pull_number)
            posted = await self._post_comment(host, target, summary.comment)
            committed = False
        if posted:
            trail.append(PipelineState.POSTED)
        if committed:
            trail.append(PipelineState.COMMITTED)
        trail.append(PipelineState.DONE)
        return WebhookOutcome(200, {"message": DONE_MESSAGE}, event.intent, trail)

    async def _post_comment(self, host: PullRequestHost, target: PullRequestTarget, comment: str) -> bool:
        try:
            await host.create_comment(target.repo_owner, target.repo_name, target.pull_number, comment)
        except Exception:
            logger.exception("Failed to create comment on %s#%d", target.full_name, target.pull_number)
            return False
        return True

    async def _record_usage(self, decision: QuotaDecision, lines: int) -> bool:
        # Both writes share the request session, so they run in sequence.
        if decision.account is None:
            return False
        committed = await self._ledger.commit_usage(decision.account.id, lines)
        await self._stats.record_run(lines)
        return committed

    # ------------------------------------------------------------------
    # Raw-diff path
    # ------------------------------------------------------------------

    async def handle_raw_diff(self, diff_body: str) -> WebhookOutcome:
        """Summarize a pre-fetched diff without quota or PR comment.

        The comment text is returned to the caller under ``comment``.
        """
        trail = [PipelineState.RECEIVED]
        try:
            files = parse_diff_body(diff_body)
        except DiffFormatError as exc:
            trail.append(PipelineState.REJECTED)
            logger.info("Rejected raw diff: %s", exc.detail)
            return WebhookOutcome(400, {"message": FORMAT_ERROR_MESSAGE, "detail": exc.detail}, None, trail)

        trail.append(PipelineState.ANALYSIS_EVENT)
        relevant = self._filter.filter(files)
        batches = self._chunker.chunk(relevant)
        summary = await self._summary.explain(batches)
        trail.append(PipelineState.SUMMARIZED)

        if summary.produced:
            await self._stats.record_run(total_changes(relevant))
        trail.append(PipelineState.DONE)
        return WebhookOutcome(200, {"comment": summary.comment}, None, trail)


def total_changes(files: list[ChangedFile]) -> int:
    return sum(f.changes for f in files)


def _repo_names(repositories: Any) -> list[str]:
    if not isinstance(repositories, list):
        return []
    names = []
    for repo in repositories:
        if isinstance(repo, dict) and isinstance(repo.get("full_name"), str):
            names.append(repo["full_name"])
    return names
