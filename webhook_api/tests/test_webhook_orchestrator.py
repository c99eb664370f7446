"""End-to-end tests of the webhook pipeline on an in-memory database.

The GitHub host and the LLM are fakes; everything between them (router,
filter, chunker, ledger, summary engine, stats) is the real thing.
"""

from __future__ import annotations

import json

import pytest
from diff_engine.events import compute_signature
from diff_engine.models.account import PlanTier
from diff_engine.models.events import Intent
from diff_engine.state.repository import PublicStatsRepository
from summary_engine.engines.summarizer import BANNER_TITLE

from webhook_api.services.webhook_orchestrator import (
    BAD_REQUEST_MESSAGE,
    DONE_MESSAGE,
    NOTHING_TO_DO,
    UPSTREAM_FAILURE_MESSAGE,
    PipelineState,
)

S = PipelineState


class TestAnalysis:
    @pytest.mark.asyncio
    async def test_labeled_pr_within_quota(self, orchestrator, make_account, sign, labeled_payload, host, mock_llm, ledger, async_session) -> None:
        """Label trigger: summary posted, usage committed, stats recorded."""
        account = await make_account(repos=["octo/widgets"], loc_limit=1000)

        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 200
        assert outcome.body == {"message": DONE_MESSAGE}
        assert outcome.intent == Intent.EXPLAIN_BY_LABEL
        assert outcome.trail == [
            S.RECEIVED,
            S.AUTHENTICATED,
            S.CLASSIFIED,
            S.ANALYSIS_EVENT,
            S.QUOTA_CHECKED,
            S.SUMMARIZED,
            S.POSTED,
            S.COMMITTED,
            S.DONE,
        ]

        assert len(host.comments) == 1
        comment = host.comments[0]
        assert (comment["owner"], comment["repo"], comment["issue_number"]) == ("Octo", "Widgets", 42)
        assert comment["body"].startswith(BANNER_TITLE)
        assert "Adds request validation" in comment["body"]

        # Only src/app.ts (10) and the removed lib/util.py (5) survive the filter.
        sent = mock_llm.complete.await_args_list[0].args[1]
        assert "src/app.ts" in sent and "lib/util.py" in sent and "File deleted" in sent
        assert "app.test.ts" not in sent and "README.md" not in sent

        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.usage.loc_count == 15
        stats = await PublicStatsRepository(async_session).get()
        assert (stats["runs"], stats["loc_analyzed"]) == (1, 15)

    @pytest.mark.asyncio
    async def test_comment_trigger_uses_issue_number(self, orchestrator, make_account, sign, host) -> None:
        await make_account(repos=["octo/widgets"])
        payload = {
            "action": "created",
            "comment": {"body": "@explainthispr"},
            "issue": {"number": 9},
            "repository": {"name": "widgets", "owner": {"login": "octo"}},
            "installation": {"id": 1},
            "sender": {"login": "bob", "id": 2},
        }

        outcome = await orchestrator.handle_webhook(*sign(payload))

        assert outcome.status_code == 200
        assert host.comments[0]["issue_number"] == 9

    @pytest.mark.asyncio
    async def test_over_loc_limit(self, orchestrator, make_account, sign, labeled_payload, host, mock_llm, ledger) -> None:
        """Quota refusal: 402, a notice instead of a summary, no LLM spend."""
        account = await make_account(repos=["octo/widgets"], loc_limit=1000, loc_count=990)

        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 402
        assert outcome.trail[-1] == S.REJECTED
        assert S.SUMMARIZED not in outcome.trail
        mock_llm.complete.assert_not_awaited()
        assert len(host.comments) == 1
        assert "limit of 1000 lines of code" in host.comments[0]["body"]

        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.usage.loc_count == 990

    @pytest.mark.asyncio
    async def test_unowned_repository(self, orchestrator, sign, labeled_payload, host, mock_llm) -> None:
        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 402
        assert host.comments == []
        mock_llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_comment_failure_still_commits(self, orchestrator, make_account, sign, labeled_payload, host, ledger) -> None:
        account = await make_account(repos=["octo/widgets"])
        host.fail_comments = True

        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 200
        assert S.POSTED not in outcome.trail
        assert S.COMMITTED in outcome.trail
        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.usage.loc_count == 15

    @pytest.mark.asyncio
    async def test_over_repo_limit(self, orchestrator, make_account, sign, labeled_payload, host, mock_llm, ledger, async_session) -> None:
        """One repo over the ceiling: 402 naming the repo limit, no LLM spend."""
        account = await make_account(repos=["octo/widgets", "octo/a", "octo/b"], repos_limit=3, loc_limit=1000)
        await ledger.accounts.set_plan(account.id, PlanTier.STARTER, repos_limit=2, loc_limit=1000)
        await async_session.commit()

        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 402
        assert outcome.trail[-1] == S.REJECTED
        assert S.SUMMARIZED not in outcome.trail
        mock_llm.complete.assert_not_awaited()
        assert len(host.comments) == 1
        assert "limit of 2 repos" in host.comments[0]["body"]
        assert outcome.body["message"] == host.comments[0]["body"]

        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.usage.repos_count == 3
        assert refreshed.usage.loc_count == 0

    @pytest.mark.asyncio
    async def test_llm_failure_posts_fallback_without_charging(self, orchestrator, make_account, sign, labeled_payload, host, mock_llm, ledger, async_session) -> None:
        """Nothing was explained, so neither the account nor the stats are charged."""
        account = await make_account(repos=["octo/widgets"], loc_limit=1000)
        mock_llm.complete.side_effect = RuntimeError("upstream down")

        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 200
        assert "Something likely went wrong" in host.comments[0]["body"]
        assert S.POSTED in outcome.trail
        assert S.COMMITTED not in outcome.trail
        assert outcome.state == S.DONE

        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.usage.loc_count == 0
        stats = await PublicStatsRepository(async_session).get()
        assert stats["runs"] == 0

    @pytest.mark.asyncio
    async def test_file_listing_failure(self, orchestrator, make_account, sign, labeled_payload, host, ledger) -> None:
        account = await make_account(repos=["octo/widgets"])
        host.fail_list_files = True

        outcome = await orchestrator.handle_webhook(*sign(labeled_payload))

        assert outcome.status_code == 200
        assert outcome.body == {"message": UPSTREAM_FAILURE_MESSAGE}
        assert host.comments == []
        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.usage.loc_count == 0

    @pytest.mark.asyncio
    async def test_installation_id_passed_to_host_factory(self, orchestrator, make_account, sign, labeled_payload, github_app) -> None:
        await make_account(repos=["octo/widgets"])
        await orchestrator.handle_webhook(*sign(labeled_payload))
        assert github_app.installations == [777]


class TestRejectionsAndNoOps:
    @pytest.mark.asyncio
    async def test_bad_signature(self, orchestrator, labeled_payload, github_app, host) -> None:
        """A bad signature aborts before any external side effect."""
        body = json.dumps(labeled_payload).encode()
        outcome = await orchestrator.handle_webhook(compute_signature(body, "wrong-secret"), body)

        assert outcome.status_code == 400
        assert outcome.body == {"message": BAD_REQUEST_MESSAGE}
        assert outcome.trail == [S.RECEIVED, S.REJECTED]
        assert github_app.installations == []
        assert host.comments == []

    @pytest.mark.asyncio
    async def test_not_handled(self, orchestrator, sign) -> None:
        outcome = await orchestrator.handle_webhook(*sign({"action": "opened"}))
        assert outcome.status_code == 200
        assert outcome.body == {"message": NOTHING_TO_DO}
        assert outcome.state == S.DONE

    @pytest.mark.asyncio
    async def test_bot_comment_ignored(self, orchestrator, sign, github_app) -> None:
        payload = {"action": "created", "comment": {"body": "## summary"}, "sender": {"login": "explainthispr[bot]"}}
        outcome = await orchestrator.handle_webhook(*sign(payload))

        assert outcome.intent == Intent.COMMENT_BY_BOT
        assert outcome.body == {"message": NOTHING_TO_DO}
        assert github_app.installations == []


class TestRepoEvents:
    @staticmethod
    def _payload(action: str, added=(), removed=(), sender_id: int = 1) -> dict:
        payload = {"action": action, "sender": {"id": sender_id, "login": f"user{sender_id}"}}
        if added:
            payload["repositories_added"] = [{"full_name": name} for name in added]
        if removed:
            payload["repositories_removed"] = [{"full_name": name} for name in removed]
        return payload

    @pytest.mark.asyncio
    async def test_first_install_creates_inert_account(self, orchestrator, sign, ledger) -> None:
        outcome = await orchestrator.handle_webhook(*sign(self._payload("added", added=["octo/a"], sender_id=50)))

        assert outcome.status_code == 200
        assert outcome.body == {"message": "Repository limit reached."}
        assert S.REPO_EVENT in outcome.trail
        account = await ledger.accounts.find_by_provider_id(50)
        assert account is not None
        assert account.repos == []

    @pytest.mark.asyncio
    async def test_added_within_limit(self, orchestrator, make_account, sign, ledger) -> None:
        account = await make_account(repos=["octo/a"], repos_limit=4)
        outcome = await orchestrator.handle_webhook(*sign(self._payload("added", added=["Octo/B"])))

        assert outcome.body == {"message": "Repositories added."}
        refreshed = await ledger.accounts.get(account.id)
        assert sorted(refreshed.repos) == ["octo/a", "octo/b"]

    @pytest.mark.asyncio
    async def test_removed(self, orchestrator, make_account, sign, ledger) -> None:
        account = await make_account(repos=["octo/a", "octo/b"])
        outcome = await orchestrator.handle_webhook(*sign(self._payload("removed", removed=["octo/a"])))

        assert outcome.body == {"message": "Repositories removed."}
        refreshed = await ledger.accounts.get(account.id)
        assert refreshed.repos == ["octo/b"]
        assert refreshed.usage.repos_count == 1

    @pytest.mark.asyncio
    async def test_swap_at_limit(self, orchestrator, make_account, sign, ledger) -> None:
        """Adding and removing one repo in the same event succeeds at the limit."""
        account = await make_account(repos=["octo/a", "octo/b"], repos_limit=2)
        payload = self._payload("added", added=["octo/c"], removed=["octo/a"])

        outcome = await orchestrator.handle_webhook(*sign(payload))

        assert outcome.body == {"message": "Repositories added."}
        refreshed = await ledger.accounts.get(account.id)
        assert sorted(refreshed.repos) == ["octo/b", "octo/c"]
        assert refreshed.usage.repos_count == 2


class TestRawDiff:
    @pytest.mark.asyncio
    async def test_empty_array_rejected(self, orchestrator, mock_llm) -> None:
        outcome = await orchestrator.handle_raw_diff("[]")

        assert outcome.status_code == 400
        assert "message" in outcome.body
        assert outcome.trail == [S.RECEIVED, S.REJECTED]
        mock_llm.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_valid_diff_returns_comment(self, orchestrator, host, github_app, async_session) -> None:
        diff = json.dumps(
            [{"filename": "src/app.ts", "status": "modified", "changes": 12, "patch": "@@ -1 +1 @@\n-a\n+b"}]
        )
        outcome = await orchestrator.handle_raw_diff(diff)

        assert outcome.status_code == 200
        assert outcome.body["comment"].startswith(BANNER_TITLE)
        assert "Adds request validation" in outcome.body["comment"]
        assert github_app.installations == []
        assert host.comments == []
        stats = await PublicStatsRepository(async_session).get()
        assert (stats["runs"], stats["loc_analyzed"]) == (1, 12)

    @pytest.mark.asyncio
    async def test_only_test_files_yields_fallback(self, orchestrator, mock_llm, async_session) -> None:
        diff = json.dumps([{"filename": "src/app.test.ts", "status": "modified", "changes": 12, "patch": "+x"}])
        outcome = await orchestrator.handle_raw_diff(diff)

        assert outcome.status_code == 200
        assert "No changes to analyze" in outcome.body["comment"]
        mock_llm.complete.assert_not_awaited()
        stats = await PublicStatsRepository(async_session).get()
        assert stats["runs"] == 0
