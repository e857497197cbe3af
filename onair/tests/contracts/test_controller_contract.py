"""
Contract tests for the command controller

Covers: start/stop/effect dispatch by command substring, error propagation,
listener handles.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from onair.broadcast.registry import ListenerRegistry
from onair.errors import EffectNotFound, NotPlaying
from onair.http.controller import Controller


class TestControllerCommands:
    """Tests for handle_command()."""

    @pytest.fixture
    def orchestrator(self):
        orchestrator = Mock()
        orchestrator.start = AsyncMock()
        orchestrator.snapshot = Mock(return_value={"state": "IDLE"})
        return orchestrator

    @pytest.fixture
    def effects(self):
        effects = Mock()
        effects.resolve = AsyncMock(return_value="/fx/applause.mp3")
        return effects

    @pytest.fixture
    def controller(self, orchestrator, effects):
        return Controller(orchestrator, ListenerRegistry(), effects)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["start", "Start", "please START now"])
    async def test_start(self, controller, orchestrator, command):
        """Test that any command containing "start" starts playback."""
        assert await controller.handle_command(command) == {"result": "ok"}
        orchestrator.start.assert_awaited_once()
        orchestrator.stop.assert_not_called()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", ["stop", "STOP", "full stop"])
    async def test_stop(self, controller, orchestrator, command):
        """Test that any command containing "stop" stops playback."""
        assert await controller.handle_command(command) == {"result": "ok"}
        orchestrator.stop.assert_called_once()
        orchestrator.start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_effect(self, controller, orchestrator, effects):
        """Test that other commands resolve an effect and splice it in."""
        assert await controller.handle_command("Applause") == {"result": "ok"}

        effects.resolve.assert_awaited_once_with("applause")
        orchestrator.append_effect.assert_called_once_with("/fx/applause.mp3")

    @pytest.mark.asyncio
    async def test_unknown_effect_propagates(self, controller, orchestrator, effects):
        """Test that a missing effect is reported to the caller."""
        effects.resolve.side_effect = EffectNotFound("Effect not available: boo")

        with pytest.raises(EffectNotFound):
            await controller.handle_command("boo")
        orchestrator.append_effect.assert_not_called()

    @pytest.mark.asyncio
    async def test_effect_while_idle_propagates(self, controller, orchestrator):
        """Test that NotPlaying from the orchestrator reaches the caller."""
        orchestrator.append_effect.side_effect = NotPlaying("idle")

        with pytest.raises(NotPlaying):
            await controller.handle_command("applause")

    def test_status_is_orchestrator_snapshot(self, controller):
        """Test that status() passes the orchestrator snapshot through."""
        assert controller.status() == {"state": "IDLE"}


class TestControllerListeners:
    """Tests for create_listener()."""

    def test_listener_handle_closes_connection(self):
        """Test that on_close disconnects the listener from the registry."""
        registry = ListenerRegistry()
        controller = Controller(Mock(), registry, Mock())

        handle = controller.create_listener()
        assert registry.listener_ids() == [handle.id]

        handle.on_close()
        handle.on_close()

        assert registry.listener_count == 0
        assert handle.sink.closed
