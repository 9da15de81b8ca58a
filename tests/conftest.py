"""
Shared pytest fixtures for all tests.
"""
import asyncio
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from config.preflight_config import PreflightConfig
from preflight.approvals.ui import DialogEvent, DialogView, NotifyLevel
from preflight.context import PreflightContext
from preflight.models import ToolCall

CLASSIFIER_PROMPT = "You are a tool preflight assistant."
SUGGESTION_PROMPT = "You are suggesting custom policy rules"
CONSISTENCY_PROMPT = "You are validating whether"
EXPLAIN_PROMPT = "You are explaining a tool call"

DEFAULT_SUGGESTIONS = "Allow listing files\nAsk before writing files\nDeny deleting files"
NO_CONFLICT = json.dumps({"conflict": False, "reason": "No overlap.", "conflictsWith": []})

# How long a scripted dialog step waits for the view it expects
STEP_TIMEOUT = 2.0


class ScriptedLLM:
    """
    LLMClient that answers from per-oracle queues.

    Each queue holds response strings, exceptions to raise, or callables
    receiving the prompt. When a queue runs dry the oracle gets a default:
    classification and explanation fail, suggestions and consistency checks
    return harmless answers.
    """

    def __init__(self):
        self.classify: list[Any] = []
        self.suggest: list[Any] = []
        self.consistency: list[Any] = []
        self.explain: list[Any] = []
        self.calls: list[tuple[str, str, str]] = []

    def _kind(self, prompt: str) -> str:
        if CLASSIFIER_PROMPT in prompt:
            return "classify"
        if SUGGESTION_PROMPT in prompt:
            return "suggest"
        if CONSISTENCY_PROMPT in prompt:
            return "consistency"
        if EXPLAIN_PROMPT in prompt:
            return "explain"
        raise AssertionError(f"Unexpected prompt: {prompt[:80]}")

    def prompts(self, kind: str) -> list[str]:
        return [prompt for call_kind, prompt, _ in self.calls if call_kind == kind]

    def models(self, kind: str) -> list[str]:
        return [model for call_kind, _, model in self.calls if call_kind == kind]

    async def complete(self, prompt: str, *, model: str, system_prompt: str | None = None) -> str:
        kind = self._kind(prompt)
        self.calls.append((kind, prompt, model))
        queue = getattr(self, kind)
        if not queue:
            return self._default(kind)
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response

    @staticmethod
    def _default(kind: str) -> str:
        if kind == "suggest":
            return DEFAULT_SUGGESTIONS
        if kind == "consistency":
            return NO_CONFLICT
        raise RuntimeError(f"no {kind} response scripted")


def classification(**entries: tuple) -> str:
    """
    Build a classifier response.

    Each keyword is a tool call id mapped to
    ``(summary, destructive)`` or ``(summary, destructive, decision, reason)``.
    """
    payload = {}
    for call_id, entry in entries.items():
        summary, destructive = entry[0], entry[1]
        decision = entry[2] if len(entry) > 2 else "none"
        reason = entry[3] if len(entry) > 3 else ""
        payload[call_id] = {
            "intrinsic": {"summary": summary, "destructive": destructive},
            "policy": {"decision": decision, "reason": reason},
        }
    return json.dumps(payload)


class ScriptedUI:
    """
    ApprovalUI driven by a script.

    ``selections`` answers select prompts in order (None dismisses).
    ``dialogs`` holds one event script per dialog, in the order dialogs are
    opened. A script entry is either an event or a ``(predicate, event)``
    pair that waits until the latest rendered view satisfies the predicate.
    A dialog whose script has run dry is dismissed.
    """

    def __init__(self, selections: list[str | None] | None = None, dialogs: list[list[Any]] | None = None):
        self.selections = list(selections or [])
        self.dialogs = [list(script) for script in dialogs or []]
        self.notifications: list[tuple[str, NotifyLevel]] = []
        self.select_prompts: list[tuple[str, list[str]]] = []
        self.views: list[DialogView] = []
        self.closed: list[str] = []
        self._scripts: dict[str, list[Any]] = {}
        self._view_changed = asyncio.Event()

    @property
    def has_ui(self) -> bool:
        return True

    async def notify(self, message: str, level: NotifyLevel = "info") -> None:
        self.notifications.append((message, level))

    async def select(self, title: str, options: list[str]) -> str | None:
        self.select_prompts.append((title, options))
        if not self.selections:
            return None
        return self.selections.pop(0)

    def _script(self, dialog_id: str) -> list[Any]:
        if dialog_id not in self._scripts:
            self._scripts[dialog_id] = self.dialogs.pop(0) if self.dialogs else []
        return self._scripts[dialog_id]

    async def show_dialog(self, view: DialogView) -> None:
        self._script(view.dialog_id)
        self.views.append(view)
        self._view_changed.set()

    async def next_dialog_event(self, dialog_id: str) -> DialogEvent | None:
        script = self._script(dialog_id)
        if not script:
            return None
        step = script.pop(0)
        if isinstance(step, tuple):
            predicate, event = step
            await asyncio.wait_for(self._wait_for_view(predicate), timeout=STEP_TIMEOUT)
            return event
        return step

    async def _wait_for_view(self, predicate: Callable[[DialogView], bool]) -> None:
        while not (self.views and predicate(self.views[-1])):
            self._view_changed.clear()
            await self._view_changed.wait()

    async def close_dialog(self, dialog_id: str) -> None:
        self.closed.append(dialog_id)

    @property
    def dialogs_opened(self) -> int:
        return len(self._scripts)

    def first_view(self, index: int) -> DialogView:
        """First rendered view of the ``index``-th dialog opened."""
        dialog_id = list(self._scripts)[index]
        return next(view for view in self.views if view.dialog_id == dialog_id)


class HeadlessUI(ScriptedUI):
    """ScriptedUI reporting no interactive front end."""

    @property
    def has_ui(self) -> bool:
        return False


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point HOME and the agent dir at a temp directory so global settings are isolated."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("PREFLIGHT_AGENT_DIR", str(home / ".pi" / "agent"))
    return home


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace directory."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def write_settings(workspace: Path, isolated_home: Path) -> Callable[[dict, str], Path]:
    """Write a workspace or global settings document."""

    def write(document: dict, scope: str = "workspace") -> Path:
        if scope == "workspace":
            path = workspace / ".pi" / "preflight" / "settings.local.json"
        else:
            path = isolated_home / ".pi" / "preflight" / "settings.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return write


@pytest.fixture
def read_workspace_settings(workspace: Path) -> Callable[[], dict]:
    """Read back the workspace settings document."""

    def read() -> dict:
        path = workspace / ".pi" / "preflight" / "settings.local.json"
        return json.loads(path.read_text(encoding="utf-8"))

    return read


@pytest.fixture
def llm() -> ScriptedLLM:
    """Scripted LLM client."""
    return ScriptedLLM()


@pytest.fixture
def ui() -> ScriptedUI:
    """Scripted interactive UI."""
    return ScriptedUI()


@pytest.fixture
def config() -> PreflightConfig:
    """Default config with explicit models so prompts are easy to tell apart."""
    return PreflightConfig(
        model={"provider": "anthropic", "id": "classifier-model"},
        policy_model={"provider": "anthropic", "id": "policy-model"},
    )


@pytest.fixture
def ctx(workspace: Path, config: PreflightConfig, ui: ScriptedUI, llm: ScriptedLLM) -> PreflightContext:
    """Preflight context over the scripted UI and LLM."""
    return PreflightContext(cwd=str(workspace), config=config, ui=ui, llm=llm)


@pytest.fixture
def bash_call() -> ToolCall:
    """A destructive bash call."""
    return ToolCall(id="call-1", name="bash", args={"command": "rm -rf build"})
