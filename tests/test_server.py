"""
Integration tests for the FastAPI server.
Uses the real FastAPI TestClient for HTTP endpoint testing.
"""
import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from config.preflight_config import PreflightConfig
from conftest import HeadlessUI, ScriptedLLM, classification
from preflight import EventBusApprovalUI, NotFoundError, PreflightGate
from preflight.approvals.ui import ChooseOption, DialogView
from preflight.events import DIALOG_CLOSED, DIALOG_UPDATED, NOTIFY, SELECT_REQUESTED, SELECT_RESOLVED, Event, MemoryEventBus
from server import app, set_gate
from server.app import parse_cors_origins
from server.event_bus import SSEEventBus
from server.logging_config import detach_debug_logs
from server.middleware import response_log_level


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def headless_gate(workspace, tmp_path):
    """A headless gate with approvals off."""
    gate = PreflightGate(
        str(workspace),
        HeadlessUI(),
        ScriptedLLM(),
        config=PreflightConfig(approval_mode="off"),
        config_path=tmp_path / "preflight.json",
    )
    set_gate(gate)
    yield gate
    set_gate(None)
    detach_debug_logs()


@pytest.fixture
def remote_gate(workspace, tmp_path):
    """A gate answering approvals through the event bus."""
    gate = PreflightGate(
        str(workspace),
        EventBusApprovalUI(MemoryEventBus(), timeout=1),
        ScriptedLLM(),
        config=PreflightConfig(),
        config_path=tmp_path / "preflight.json",
    )
    set_gate(gate)
    yield gate
    set_gate(None)


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_without_gate(self, client):
        """Test health endpoint when the gate is not configured."""
        set_gate(None)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "gate_configured": False, "interactive": False}

    def test_health_with_remote_gate(self, client, remote_gate):
        """A gate with the event bus UI is interactive."""
        data = client.get("/health").json()
        assert data["gate_configured"] is True
        assert data["interactive"] is True


class TestCheckEndpoint:
    """Test the tool call check endpoint."""

    def test_check_without_gate(self, client):
        """Checks fail when no gate is configured."""
        set_gate(None)
        response = client.post("/preflight/check", json={"toolCalls": [{"id": "1", "name": "bash"}]})
        assert response.status_code == 500

    def test_check_requires_tool_calls(self, client, headless_gate):
        """An empty batch is rejected."""
        response = client.post("/preflight/check", json={"toolCalls": []})
        assert response.status_code == 422

    def test_check_allows_in_off_mode(self, client, headless_gate):
        """With approvals off and no rules every call is allowed."""
        response = client.post(
            "/preflight/check",
            json={
                "toolCalls": [{"id": "1", "name": "bash", "args": {"command": "ls"}}],
                "messages": [{"role": "user", "content": "list files"}],
                "systemPrompt": "You are a coding agent.",
            },
        )
        assert response.status_code == 200
        assert response.json() == {"verdicts": {"1": {"tool_call_id": "1", "allow": True}}}

    def test_blocked_reason(self, client, headless_gate, write_settings):
        """A blocked call's reason can be fetched once."""
        write_settings({"permissions": {"deny": ["Bash(rm *)"]}})
        headless_gate.llm.classify.append(classification(**{"1": ("Remove files", True)}))

        verdicts = client.post(
            "/preflight/check",
            json={"toolCalls": [{"id": "1", "name": "bash", "args": {"command": "rm x"}}]},
        ).json()["verdicts"]
        assert verdicts["1"]["allow"] is False
        assert verdicts["1"]["decision"]["source"] == "deterministic"

        response = client.get("/preflight/blocked/1")
        assert response.json() == {"toolCallId": "1", "reason": "Blocked by rule Bash(rm *)"}
        assert client.get("/preflight/blocked/1").status_code == 404

    def test_debug_log_written(self, client, headless_gate, workspace):
        """With debug on, checks write the workspace debug log."""
        client.patch("/preflight/config", json={"config": {"debug": True}})
        client.post("/preflight/check", json={"toolCalls": [{"id": "1", "name": "read", "args": {"path": "a"}}]})
        assert (workspace / ".pi" / "preflight" / "logs" / "preflight-debug.log").exists()


class TestRulesEndpoint:
    """Test rule inspection."""

    def test_rules_for_tool(self, client, headless_gate, write_settings):
        """Rules are returned for the requested tool."""
        write_settings(
            {
                "permissions": {"allow": ["Bash(ls)", "Read"]},
                "preflight": {"llmRules": {"*": ["Be careful"], "bash": ["No network"]}},
            }
        )
        data = client.get("/preflight/rules", params={"tool": "Bash"}).json()
        assert data["tool"] == "bash"
        assert data["policy"] == {"global": ["Be careful"], "tool": ["No network"]}
        assert data["permissions"]["allow"] == ["Bash(ls)"]


class TestConfigEndpoints:
    """Test settings endpoints."""

    def test_get_config(self, client, headless_gate):
        """Settings are returned with camelCase keys and status lines."""
        data = client.get("/preflight/config").json()
        assert data["scope"] == "session"
        assert data["config"]["approvalMode"] == "off"
        assert data["sessionOverrides"] is False
        assert data["status"][0] == "Mode: off"

    def test_session_update_and_clear(self, client, headless_gate):
        """Session updates apply until cleared."""
        data = client.patch(
            "/preflight/config", json={"scope": "session", "config": {"approveDestructiveOnly": True}}
        ).json()
        assert data["config"]["approvalMode"] == "destructive"
        assert data["sessionOverrides"] is True

        data = client.delete("/preflight/config/session").json()
        assert data["config"]["approvalMode"] == "off"
        assert data["sessionOverrides"] is False

    def test_persistent_update(self, client, headless_gate, tmp_path):
        """Persistent updates are written to the config file."""
        data = client.patch(
            "/preflight/config", json={"scope": "persistent", "config": {"contextMessages": "full"}}
        )
        assert data.status_code == 400

        data = client.patch(
            "/preflight/config", json={"scope": "persistent", "config": {"contextMessages": -1}}
        ).json()
        assert data["config"]["contextMessages"] == -1
        assert (tmp_path / "preflight.json").exists()

    def test_nothing_usable(self, client, headless_gate):
        """A request without valid settings is rejected."""
        response = client.patch("/preflight/config", json={"config": {"approvalMode": "sometimes"}})
        assert response.status_code == 400


class TestApprovalEndpoints:
    """Test the remote approval endpoints."""

    def test_requires_remote_ui(self, client, headless_gate):
        """Headless gates have no remote approvals."""
        assert client.get("/preflight/pending").status_code == 409

    def test_pending_empty(self, client, remote_gate):
        """Nothing is pending before a check runs."""
        assert client.get("/preflight/pending").json() == {"dialogs": [], "selections": []}

    def test_unknown_dialog(self, client, remote_gate):
        """Events for unknown dialogs are rejected."""
        response = client.post("/preflight/dialogs/dlg_missing/events", json={"type": "choose", "action": "allow"})
        assert response.status_code == 404

    def test_invalid_dialog_event(self, client, remote_gate):
        """Events are validated by their type."""
        response = client.post("/preflight/dialogs/dlg_missing/events", json={"type": "choose", "action": "maybe"})
        assert response.status_code == 422

    def test_unknown_selection(self, client, remote_gate):
        """Answers to unknown prompts are rejected."""
        response = client.post("/preflight/selections/sel_missing", json={"selection": "Cancel"})
        assert response.status_code == 404


class TestEventBusApprovalUI:
    """Test the remote approval UI directly."""

    @pytest.mark.asyncio
    async def test_select_answered(self):
        """A select prompt resolves with the answer posted for it."""
        bus = MemoryEventBus()
        ui = EventBusApprovalUI(bus, timeout=1)

        task = asyncio.create_task(ui.select("Rule conflict", ["Edit rule", "Cancel"]))
        await asyncio.sleep(0)
        request_id = bus.events[0].properties["requestId"]
        assert ui.pending_selections == [request_id]

        ui.respond_to_selection(request_id, "Cancel")
        assert await task == "Cancel"
        assert bus.types() == [SELECT_REQUESTED, SELECT_RESOLVED]
        assert ui.pending_selections == []

    @pytest.mark.asyncio
    async def test_select_unknown_option(self):
        """An answer that is not one of the options counts as a dismissal."""
        bus = MemoryEventBus()
        ui = EventBusApprovalUI(bus, timeout=1)
        task = asyncio.create_task(ui.select("Pick", ["A", "B"]))
        await asyncio.sleep(0)
        ui.respond_to_selection(bus.events[0].properties["requestId"], "C")
        assert await task is None

    @pytest.mark.asyncio
    async def test_select_timeout(self):
        """An unanswered prompt times out as a dismissal."""
        ui = EventBusApprovalUI(MemoryEventBus(), timeout=0.01)
        assert await ui.select("Pick", ["A"]) is None

    @pytest.mark.asyncio
    async def test_dialog_events(self):
        """Dialog events are queued per open dialog."""
        bus = MemoryEventBus()
        ui = EventBusApprovalUI(bus, timeout=1)
        view = DialogView(dialog_id="dlg_1", tool_call_id="call-1", title="Agent wants to:", summary="x", destructive=True)

        await ui.show_dialog(view)
        assert ui.open_dialogs == ["dlg_1"]
        assert bus.events[0].properties["dialog"]["dialog_id"] == "dlg_1"

        ui.push_dialog_event("dlg_1", ChooseOption(action="allow"))
        assert await ui.next_dialog_event("dlg_1") == ChooseOption(action="allow")

        await ui.close_dialog("dlg_1")
        assert bus.types() == [DIALOG_UPDATED, DIALOG_CLOSED]
        with pytest.raises(NotFoundError):
            ui.push_dialog_event("dlg_1", ChooseOption(action="allow"))

    @pytest.mark.asyncio
    async def test_dialog_timeout(self):
        """A dialog nobody answers is dismissed."""
        ui = EventBusApprovalUI(MemoryEventBus(), timeout=0.01)
        view = DialogView(dialog_id="dlg_1", tool_call_id="call-1", title="t", summary="s", destructive=False)
        await ui.show_dialog(view)
        assert await ui.next_dialog_event("dlg_1") is None


class TestSSEEventBus:
    """Test the SSE event bus."""

    @pytest.mark.asyncio
    async def test_broadcast(self):
        """Every subscriber receives published events."""
        bus = SSEEventBus()
        first, second = bus.subscribe(), bus.subscribe()
        await bus.publish(Event.notify("Saved allow rule: Bash(ls)", "info"))
        assert (await first.get())["type"] == NOTIFY
        assert (await second.get())["properties"]["message"] == "Saved allow rule: Bash(ls)"

        bus.unsubscribe(first)
        assert bus.subscribers == [second]

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_live_state(self):
        """Open dialogs and waiting prompts are replayed until answered."""
        bus = SSEEventBus()
        await bus.publish(Event.dialog_updated({"dialog_id": "dlg_1", "summary": "old"}))
        await bus.publish(Event.dialog_updated({"dialog_id": "dlg_1", "summary": "new"}))
        await bus.publish(Event.select_requested("sel_1", "Pick", ["A"]))

        queue = bus.subscribe()
        assert queue.qsize() == 2
        assert (await queue.get())["properties"]["dialog"]["summary"] == "new"

        await bus.publish(Event.dialog_closed("dlg_1"))
        await bus.publish(Event.select_resolved("sel_1", "A"))
        assert bus.live_events == []


class TestMiddleware:
    """Test request log levels."""

    def test_levels(self):
        """Errors, slow requests and polling get their own levels."""
        assert response_log_level("/preflight/config", 500, 5) == (logging.ERROR, False)
        assert response_log_level("/preflight/config", 404, 5) == (logging.WARNING, False)
        assert response_log_level("/preflight/config", 200, 5000) == (logging.WARNING, True)
        assert response_log_level("/preflight/check", 200, 60000) == (logging.INFO, False)
        assert response_log_level("/health", 200, 1) == (logging.DEBUG, False)

    def test_cors_origins(self):
        """Origins are read from a comma-separated list."""
        assert parse_cors_origins(None) == ["*"]
        assert parse_cors_origins(" * ") == ["*"]
        assert parse_cors_origins("http://a.test, http://b.test,") == ["http://a.test", "http://b.test"]
