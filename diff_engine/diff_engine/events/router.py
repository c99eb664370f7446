"""Webhook event router.

Turns ``(signature, raw body)`` into one :class:`Intent`.  Nothing is
parsed before the signature has been verified.  Classification checks run
in a fixed order and the first match wins:

1. ``labeled`` with the trigger label        -> ``explain_by_label``
2. ``created`` with the trigger comment      -> ``explain_by_comment``
3. sender is the bot itself                  -> ``comment_by_bot``
4. ``added`` with repositories               -> ``repo_added``
5. ``removed`` with repositories             -> ``repo_removed``
6. anything else                             -> ``not_handled``

The router performs no I/O and keeps no state between calls.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from diff_engine.events.signature import verify_signature
from diff_engine.models.events import Intent, PullRequestTarget, WebhookEvent

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_LABEL = "explainthispr"
DEFAULT_TRIGGER_COMMENT = "@explainthispr"


class EventRouter:
    """Classifies authenticated webhook payloads.

    Parameters
    ----------
    secret:
        Shared webhook secret used for HMAC verification.
    bot_login:
        Login of the bot's own account, used for loop prevention.
    trigger_label:
        Label name (case-insensitive) that requests an explanation.
    trigger_comment:
        Comment body (trimmed, case-insensitive) that requests an explanation.
    """

    def __init__(
        self,
        secret: str,
        *,
        bot_login: str = "",
        trigger_label: str = DEFAULT_TRIGGER_LABEL,
        trigger_comment: str = DEFAULT_TRIGGER_COMMENT,
    ) -> None:
        self._secret = secret
        self._bot_login = bot_login.lower()
        self._trigger_label = trigger_label.lower()
        self._trigger_comment = trigger_comment.strip().casefold()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(self, signature: str | None, raw_body: bytes) -> Intent:
        """Return the intent of the payload, or ``BAD_REQUEST``."""
        payload = self._authenticate(signature, raw_body)
        if payload is None:
            return Intent.BAD_REQUEST
        return self.classify_payload(payload)

    def route(self, signature: str | None, raw_body: bytes) -> WebhookEvent:
        """Authenticate, classify and resolve the routing key in one pass."""
        payload = self._authenticate(signature, raw_body)
        if payload is None:
            return WebhookEvent(intent=Intent.BAD_REQUEST)

        intent = self.classify_payload(payload)
        target: PullRequestTarget | None = None
        if intent.is_analysis:
            target = self.resolve_target(intent, payload)
            if target is None:
                logger.warning("Analysis event without a resolvable pull request: action=%s", payload.get("action"))
                intent = Intent.BAD_REQUEST

        return WebhookEvent(intent=intent, payload=payload, target=target)

    def classify_payload(self, payload: dict[str, Any]) -> Intent:
        """Classify an already-authenticated payload."""
        action = payload.get("action")

        label = _get(payload, "label", "name")
        if action == "labeled" and isinstance(label, str) and label.lower() == self._trigger_label:
            return Intent.EXPLAIN_BY_LABEL

        comment = _get(payload, "comment", "body")
        if action == "created" and isinstance(comment, str) and comment.strip().casefold() == self._trigger_comment:
            return Intent.EXPLAIN_BY_COMMENT

        sender = _get(payload, "sender", "login")
        if self._bot_login and isinstance(sender, str) and sender.lower() == self._bot_login:
            return Intent.COMMENT_BY_BOT

        if action == "added" and payload.get("repositories_added"):
            return Intent.REPO_ADDED

        if action == "removed" and payload.get("repositories_removed"):
            return Intent.REPO_REMOVED

        logger.info("Request type not handled: action=%s", action)
        return Intent.NOT_HANDLED

    @staticmethod
    def resolve_target(intent: Intent, payload: dict[str, Any]) -> PullRequestTarget | None:
        """Extract ``{owner, repo, pull_number, installation_id}`` for analysis intents.

        Label events carry the pull request number; comment events carry
        the issue number.  Returns ``None`` when any part is missing.
        """
        if intent == Intent.EXPLAIN_BY_LABEL:
            number = _get(payload, "pull_request", "number")
        elif intent == Intent.EXPLAIN_BY_COMMENT:
            number = _get(payload, "issue", "number")
        else:
            return None

        repo_name = _get(payload, "repository", "name")
        repo_owner = _get(payload, "repository", "owner", "login")
        installation_id = _get(payload, "installation", "id") or 0

        if not isinstance(number, int) or not repo_name or not repo_owner:
            return None

        return PullRequestTarget(
            repo_owner=repo_owner,
            repo_name=repo_name,
            pull_number=number,
            installation_id=int(installation_id),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _authenticate(self, signature: str | None, raw_body: bytes) -> dict[str, Any] | None:
        if not verify_signature(raw_body, signature, self._secret):
            logger.warning("Signature verification failed")
            return None
        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Signed payload is not valid JSON")
            return None
        if not isinstance(payload, dict):
            logger.warning("Signed payload is not a JSON object")
            return None
        return payload


def _get(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning ``None`` as soon as a key is missing."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data
