"""Unit tests for QueryLifecycleController."""

import asyncio

import pytest

from graphql_container.reconciler.executor import RequestExecutor
from graphql_container.reconciler.query import QueryLifecycleController, QueryStatus


def make_controller(client, state, document="query Q1", variables=None, **kwargs):
    executor = RequestExecutor(client, state, lambda: {"data": state.snapshot()}, metrics_enabled=False)
    return QueryLifecycleController(executor, state, document, variables, **kwargs)


def by_id(props):
    return {"id": props["id"]}


class TestQueryLifecycleController:
    """Test the primary query state machine."""

    @pytest.mark.asyncio
    async def test_not_declared(self, fake_client, local_state):
        """Test nothing happens without a primary query."""
        controller = make_controller(fake_client, local_state, document=None)

        assert controller.start({"id": 1}) is None
        assert controller.refresh({"id": 1}, {"id": 2}) is None
        assert controller.status is QueryStatus.IDLE
        assert fake_client.calls == []
        assert local_state.snapshot() == {"loading": False, "loaded": False, "error": None}

    @pytest.mark.asyncio
    async def test_start_loads(self, fake_client, local_state):
        """Test idle -> loading -> loaded."""
        fake_client.set_response({"data": {"name": "a"}})
        controller = make_controller(fake_client, local_state, variables=by_id)

        controller.start({"id": 1})

        assert controller.status is QueryStatus.LOADING
        assert local_state.loading is True
        assert local_state.loaded is False

        await controller.wait()

        assert fake_client.calls == [("query", "query Q1", {"id": 1})]
        assert controller.status is QueryStatus.LOADED
        assert local_state.snapshot() == {
            "loading": False,
            "loaded": True,
            "error": None,
            "name": "a",
        }

    @pytest.mark.asyncio
    async def test_start_fails(self, fake_client, local_state):
        """Test idle -> loading -> error."""
        failure = RuntimeError("boom")
        fake_client.set_response(failure)
        controller = make_controller(fake_client, local_state)

        controller.start({})
        await controller.wait()

        assert controller.status is QueryStatus.ERROR
        assert local_state.loading is False
        assert local_state.loaded is False
        assert local_state.error is failure

    @pytest.mark.asyncio
    async def test_no_variables_passes_none(self, fake_client, local_state):
        """Test a query without a builder sends no variables."""
        controller = make_controller(fake_client, local_state)

        controller.start({"id": 1})
        await controller.wait()

        assert fake_client.calls == [("query", "query Q1", None)]

    @pytest.mark.asyncio
    async def test_refresh_only_on_change(self, fake_client, local_state):
        """Test refresh runs only when variables changed."""
        controller = make_controller(fake_client, local_state, variables=by_id)

        assert controller.refresh({"id": 1}, {"id": 1}) is None
        assert fake_client.calls == []

        controller.refresh({"id": 1}, {"id": 2})
        await controller.wait()

        assert fake_client.calls == [("query", "query Q1", {"id": 2})]

    @pytest.mark.asyncio
    async def test_loading_and_loaded_never_both_true(self, fake_client, local_state):
        """Test re-entering loading clears loaded."""
        controller = make_controller(fake_client, local_state, variables=by_id)

        controller.start({"id": 1})
        await controller.wait()
        assert local_state.loaded is True

        controller.refresh({"id": 1}, {"id": 2})

        assert local_state.loading is True
        assert local_state.loaded is False
        await controller.wait()

    @pytest.mark.asyncio
    async def test_success_clears_previous_error(self, fake_client, local_state):
        """Test a later success resets the error by default."""
        fake_client.set_response(RuntimeError("boom"))
        fake_client.set_response({"data": {"name": "b"}})
        controller = make_controller(fake_client, local_state, variables=by_id)

        controller.start({"id": 1})
        await controller.wait()
        controller.refresh({"id": 1}, {"id": 2})
        await controller.wait()

        assert local_state.error is None
        assert local_state.loaded is True

    @pytest.mark.asyncio
    async def test_success_keeps_previous_error_when_configured(self, fake_client, local_state):
        """Test the error persists when clearing is disabled."""
        failure = RuntimeError("boom")
        fake_client.set_response(failure)
        fake_client.set_response({"data": {"name": "b"}})
        controller = make_controller(
            fake_client, local_state, variables=by_id, clear_error_on_success=False
        )

        controller.start({"id": 1})
        await controller.wait()
        controller.refresh({"id": 1}, {"id": 2})
        await controller.wait()

        assert local_state.error is failure
        assert local_state["name"] == "b"

    @pytest.mark.asyncio
    async def test_last_write_wins(self, fake_client, local_state):
        """Test an older response resolving last overwrites the newer one."""
        fake_client.manual = True
        controller = make_controller(fake_client, local_state, variables=by_id)

        controller.start({"id": 1})
        controller.refresh({"id": 1}, {"id": 2})
        await asyncio.sleep(0)
        first, second = fake_client.pending

        second.set_result({"data": {"name": "two"}})
        await asyncio.sleep(0)
        first.set_result({"data": {"name": "one"}})
        await controller.wait()

        assert local_state["name"] == "one"

    @pytest.mark.asyncio
    async def test_discard_stale_responses(self, fake_client, local_state):
        """Test superseded responses are dropped when configured."""
        fake_client.manual = True
        controller = make_controller(
            fake_client, local_state, variables=by_id, discard_stale_responses=True
        )

        controller.start({"id": 1})
        controller.refresh({"id": 1}, {"id": 2})
        await asyncio.sleep(0)
        first, second = fake_client.pending

        second.set_result({"data": {"name": "two"}})
        await asyncio.sleep(0)
        first.set_exception(RuntimeError("late failure"))
        await controller.wait()

        assert local_state["name"] == "two"
        assert local_state.error is None
        assert controller.status is QueryStatus.LOADED

    @pytest.mark.asyncio
    async def test_stop_cancels_in_flight(self, fake_client, local_state):
        """Test stop cancels running requests."""
        fake_client.manual = True
        controller = make_controller(fake_client, local_state)

        controller.start({})
        await asyncio.sleep(0)
        assert controller.in_flight == 1

        await controller.stop()

        assert controller.in_flight == 0
        assert fake_client.pending[0].cancelled()


class TestQueryStatus:
    """Test QueryStatus transitions reported by the controller."""

    @pytest.mark.asyncio
    async def test_idle_until_started(self, fake_client, local_state):
        """Test a declared query stays idle until the first trigger."""
        controller = make_controller(fake_client, local_state, variables=by_id)

        assert controller.status is QueryStatus.IDLE
        assert controller.refresh({"id": 1}, {"id": 1}) is None
        assert controller.status is QueryStatus.IDLE

    @pytest.mark.asyncio
    async def test_error_then_recovery(self, fake_client, local_state):
        """Test loading -> error -> loading -> loaded across two triggers."""
        fake_client.set_response(RuntimeError("boom"))
        fake_client.set_response({"data": {"name": "b"}})
        controller = make_controller(fake_client, local_state, variables=by_id)
        seen = []

        controller.start({"id": 1})
        seen.append(controller.status)
        await controller.wait()
        seen.append(controller.status)
        controller.refresh({"id": 1}, {"id": 2})
        seen.append(controller.status)
        await controller.wait()
        seen.append(controller.status)

        assert seen == [
            QueryStatus.LOADING,
            QueryStatus.ERROR,
            QueryStatus.LOADING,
            QueryStatus.LOADED,
        ]

    @pytest.mark.asyncio
    async def test_unchanged_refresh_keeps_status(self, fake_client, local_state):
        """Test a refresh without variable changes leaves the status alone."""
        controller = make_controller(fake_client, local_state, variables=by_id)
        controller.start({"id": 1})
        await controller.wait()

        controller.refresh({"id": 1}, {"id": 1, "other": True})

        assert controller.status is QueryStatus.LOADED
        assert local_state.loading is False

    @pytest.mark.asyncio
    async def test_late_response_sets_status_by_default(self, fake_client, local_state):
        """Test the last response to resolve decides the status."""
        fake_client.manual = True
        controller = make_controller(fake_client, local_state, variables=by_id)

        controller.start({"id": 1})
        controller.refresh({"id": 1}, {"id": 2})
        await asyncio.sleep(0)
        first, second = fake_client.pending

        second.set_result({"data": {"name": "two"}})
        await asyncio.sleep(0)
        assert controller.status is QueryStatus.LOADED

        first.set_exception(RuntimeError("late failure"))
        await controller.wait()

        assert controller.status is QueryStatus.ERROR

    @pytest.mark.asyncio
    async def test_stale_response_leaves_status(self, fake_client, local_state):
        """Test a discarded response does not move the status."""
        fake_client.manual = True
        controller = make_controller(
            fake_client, local_state, variables=by_id, discard_stale_responses=True
        )

        controller.start({"id": 1})
        controller.refresh({"id": 1}, {"id": 2})
        await asyncio.sleep(0)
        first, second = fake_client.pending

        first.set_result({"data": {"name": "one"}})
        await asyncio.sleep(0)
        assert controller.status is QueryStatus.LOADING
        assert local_state.loading is True

        second.set_exception(RuntimeError("boom"))
        await controller.wait()

        assert controller.status is QueryStatus.ERROR
        assert "name" not in local_state
