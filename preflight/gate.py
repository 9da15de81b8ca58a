"""
Preflight gate.

The host-facing entry point. A host hands each batch of tool calls to
``PreflightGate.check`` before running them and gets an allow/block verdict
per call. Blocked reasons are remembered so the host can substitute them
for the tool result afterwards.
"""

import logging
from pathlib import Path
from typing import Any, Iterable

from config.loader import (
    format_approval_mode,
    format_context_messages,
    format_model_setting,
    load_persistent_config,
    merge_configs,
    resolve_active_config,
    save_persistent_config,
)
from config.preflight_config import ConfigScope, PreflightConfig

from .approvals.controller import collect_approvals
from .approvals.failure import handle_preflight_failure
from .approvals.ui import ApprovalUI
from .context import PreflightContext
from .exceptions import PreflightError
from .models import ContextMessage, ToolCall, ToolCallVerdict
from .oracles.classifier import ClassificationResult, classify_tool_calls
from .oracles.llm import LLMClient
from .permissions.decisions import resolve_tool_decisions
from .permissions.patterns import get_policy_rules_for_tool
from .permissions.store import load_permissions_state

logger = logging.getLogger(__name__)

DEFAULT_USER_BLOCK_REASON = "Blocked by user."
DEFAULT_POLICY_BLOCK_REASON = "Blocked by policy."


class PreflightGate:
    """
    Runs tool call batches through classification, rule resolution and
    approvals.

    Holds the persistent configuration, the session overrides layered on top
    of it, and the block reasons recorded for calls it refused.
    """

    def __init__(
        self,
        cwd: str,
        ui: ApprovalUI,
        llm: LLMClient,
        *,
        config: PreflightConfig | None = None,
        config_path: Path | None = None,
        current_model: str | None = None,
    ):
        """
        Initialize the gate.

        Args:
            cwd: Workspace root
            ui: Approval UI (NullApprovalUI for headless hosts)
            llm: Client used by the oracles
            config: Persistent config; loaded from ``config_path`` when omitted
            config_path: Persistent config file (defaults to the agent dir location)
            current_model: Host model used for ``current`` model settings
        """
        self.cwd = cwd
        self.ui = ui
        self.llm = llm
        self.config_path = config_path
        self.current_model = current_model
        self.persistent_config = config if config is not None else load_persistent_config(config_path)
        self.session_overrides: dict[str, Any] = {}
        self._blocked: dict[str, str] = {}

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def active_config(self) -> PreflightConfig:
        return resolve_active_config(self.persistent_config, self.session_overrides)

    @property
    def has_session_overrides(self) -> bool:
        return bool(self.session_overrides)

    def config_for_scope(self, scope: ConfigScope) -> PreflightConfig:
        if scope == "persistent":
            return self.persistent_config
        return self.active_config

    def apply_config(self, update: dict[str, Any], scope: ConfigScope) -> PreflightConfig:
        """
        Apply a partial config update.

        Args:
            update: Fields to change, keyed by PreflightConfig field name
            scope: ``persistent`` writes the config file; ``session`` only
                changes the in-memory overrides

        Returns:
            The new active config
        """
        if scope == "persistent":
            self.persistent_config = PreflightConfig.model_validate(
                {**self.persistent_config.model_dump(), **update}
            )
            save_persistent_config(self.persistent_config, self.config_path)
        else:
            PreflightConfig.model_validate({**self.persistent_config.model_dump(), **update})
            self.session_overrides = merge_configs(self.session_overrides, update)
        logger.info("Preflight settings updated (%s): %s", scope, sorted(update))
        return self.active_config

    def clear_session_overrides(self) -> PreflightConfig:
        self.session_overrides = {}
        logger.info("Preflight session overrides cleared")
        return self.active_config

    def reload(self) -> None:
        """Start a fresh session: reload the config file and forget overrides and blocks."""
        self.persistent_config = load_persistent_config(self.config_path)
        self.session_overrides = {}
        self._blocked.clear()

    def status_lines(self) -> list[str]:
        config = self.active_config
        return [
            f"Mode: {format_approval_mode(config.approval_mode)}",
            f"Explain context: {format_context_messages(config.context_messages)}",
            f"Model: {format_model_setting(config.model, self.current_model)}",
            f"Policy model: {format_model_setting(config.policy_model, self.current_model)}",
            f"Debug: {'on' if config.debug else 'off'}",
        ]

    # =========================================================================
    # Checking
    # =========================================================================

    async def check(
        self,
        tool_calls: list[ToolCall],
        messages: Iterable[ContextMessage] = (),
        system_prompt: str | None = None,
    ) -> dict[str, ToolCallVerdict]:
        """
        Decide every call in a batch.

        Args:
            tool_calls: Calls the agent wants to run
            messages: Conversation so far, oldest first
            system_prompt: Host system prompt forwarded to the oracles

        Returns:
            ToolCallVerdict per tool call id
        """
        config = self.active_config
        ctx = PreflightContext(
            cwd=self.cwd,
            config=config,
            ui=self.ui,
            llm=self.llm,
            messages=list(messages),
            system_prompt=system_prompt,
            current_model=self.current_model,
        )

        permissions = load_permissions_state(self.cwd)
        if config.approval_mode == "off" and not permissions.has_rules:
            return self._allow_all(tool_calls)

        logger.debug("Preflight tool calls: %s", ", ".join(tool_call.name for tool_call in tool_calls))
        policy_rules = {
            tool_call.id: get_policy_rules_for_tool(tool_call.name, permissions.policy_rules)
            for tool_call in tool_calls
        }

        classification: ClassificationResult | None = None
        while classification is None:
            try:
                classification = await classify_tool_calls(tool_calls, policy_rules, ctx)
            except PreflightError as e:
                failure = await handle_preflight_failure(tool_calls, e.reason, ctx)
                if failure.action == "retry":
                    continue
                if failure.action == "allow":
                    logger.info("Allowing %d tool call(s) without preflight", len(tool_calls))
                    return self._allow_all(tool_calls)
                return self._block_all(tool_calls, failure.reason or e.reason)

        decisions = resolve_tool_decisions(
            tool_calls,
            classification.metadata,
            classification.policy_decisions,
            permissions,
            config.approval_mode,
            cwd=self.cwd,
        )
        approvals = await collect_approvals(
            tool_calls,
            classification.metadata,
            classification.policy_decisions,
            decisions,
            ctx,
        )
        if approvals:
            logger.debug("Preflight approvals collected for %d tool call(s)", len(approvals))

        verdicts: dict[str, ToolCallVerdict] = {}
        for tool_call in tool_calls:
            decision = decisions.get(tool_call.id)
            approval = approvals.get(tool_call.id)
            allow = True
            reason = None
            if approval is not None:
                allow = approval.allow
                if not allow:
                    reason = approval.reason or DEFAULT_USER_BLOCK_REASON
            elif decision is not None and decision.decision == "deny":
                allow = False
                reason = decision.reason or DEFAULT_POLICY_BLOCK_REASON

            if not allow:
                self._record_block(tool_call.id, reason)
            verdicts[tool_call.id] = ToolCallVerdict(
                tool_call_id=tool_call.id,
                allow=allow,
                reason=reason,
                decision=decision,
            )
        return verdicts

    def consume_block_reason(self, tool_call_id: str) -> str | None:
        """Return the recorded block reason for a call, once."""
        return self._blocked.pop(tool_call_id, None)

    def _record_block(self, tool_call_id: str, reason: str) -> None:
        self._blocked[tool_call_id] = reason
        logger.info("Blocked tool call %s: %s", tool_call_id, reason)

    def _allow_all(self, tool_calls: list[ToolCall]) -> dict[str, ToolCallVerdict]:
        return {tool_call.id: ToolCallVerdict(tool_call_id=tool_call.id, allow=True) for tool_call in tool_calls}

    def _block_all(self, tool_calls: list[ToolCall], reason: str) -> dict[str, ToolCallVerdict]:
        verdicts = {}
        for tool_call in tool_calls:
            self._record_block(tool_call.id, reason)
            verdicts[tool_call.id] = ToolCallVerdict(tool_call_id=tool_call.id, allow=False, reason=reason)
        return verdicts
