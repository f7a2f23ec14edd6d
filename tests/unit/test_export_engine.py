"""Unit tests for the export engine."""

import asyncio
import json

import pytest

from browser_export.export.engine import (
    ExportEngine,
    ExportEngineConfig,
    ExportRun,
    ExportState,
    export_document,
    validate_timeout,
)
from browser_export.export.errors import (
    EngineError,
    ExportTimeoutError,
    PayloadValidationError,
)
from browser_export.export.readiness import WAIT_FOR_IDLE_CALLBACK
from browser_export.export.tracing import ExportTracer, StepStatus
from browser_export.models.export import Dimensions


class TestValidateTimeout:
    """Tests for validate_timeout."""

    @pytest.mark.parametrize("timeout", [1, 0.5, 30])
    def test_valid(self, timeout):
        assert validate_timeout(timeout) == float(timeout)

    @pytest.mark.parametrize("timeout", [0, -1, "30", None, True, float("nan"), float("inf")])
    def test_invalid(self, timeout):
        with pytest.raises(PayloadValidationError) as exc_info:
            validate_timeout(timeout)

        assert exc_info.value.message == (
            f"The timeout should be a strictly positive amount of seconds but {timeout} was given."
        )


class TestExportRun:
    """Tests for ExportRun."""

    def test_terminal_states_are_final(self):
        run = ExportRun()
        run.transition(ExportState.DIMENSIONS_RESOLVED)
        run.fail(ExportTimeoutError("too slow"))
        run.transition(ExportState.SNAPSHOTTING)

        assert run.state == ExportState.TIMED_OUT
        assert run.history == [ExportState.VALIDATING, ExportState.DIMENSIONS_RESOLVED, ExportState.TIMED_OUT]
        assert run.error == "too slow"


class TestExportDocument:
    """Tests for the per-export mode."""

    @pytest.mark.asyncio
    async def test_exports_pdf(self, factory_class, patch_factory, fake_session, auth_payload):
        factory = patch_factory(factory_class(fake_session))
        tracer = ExportTracer()

        pdf = await export_document(auth_payload, 5, tracer=tracer)

        assert pdf.startswith(b"%PDF")
        assert factory.start_count == 1
        assert factory.stop_count == 1
        assert fake_session.close_count == 1
        assert fake_session.visible_cookies == {"name": "value"}
        assert fake_session.viewport == {"width": 794, "height": 1123}
        assert fake_session.calls[-2] == ("wait_for_function", WAIT_FOR_IDLE_CALLBACK)
        assert fake_session.calls[-1] == ("pdf", Dimensions(width=794, height=1123))
        assert "PDF export" in tracer.steps_with_status(StepStatus.FINISHED)

    @pytest.mark.asyncio
    async def test_launch_bounded_by_deadline(self, factory_class, patch_factory, simple_payload):
        factory = patch_factory(factory_class())

        await export_document(simple_payload, 2)

        assert 0 < factory.launch_timeout_ms <= 2000

    @pytest.mark.asyncio
    async def test_invalid_payload_fails_before_launch(self, factory_class, patch_factory):
        factory = patch_factory(factory_class())

        with pytest.raises(PayloadValidationError) as exc_info:
            await export_document({"paper": {"format": "a4"}}, 5)

        assert json.loads(exc_info.value.message)[0]["keyword"] == "required"
        assert factory.start_count == 0

    @pytest.mark.asyncio
    async def test_invalid_timeout_fails_before_launch(self, factory_class, patch_factory, simple_payload):
        factory = patch_factory(factory_class())

        with pytest.raises(PayloadValidationError, match="strictly positive"):
            await export_document(simple_payload, 0)

        assert factory.start_count == 0

    @pytest.mark.asyncio
    async def test_malformed_dimension_fails_before_launch(self, factory_class, patch_factory):
        factory = patch_factory(factory_class())
        payload = {"url": "https://example.com", "paper": {"width": "1xyz", "height": "2cm"}}

        # Rejected by the schema pattern before dimensions are resolved.
        with pytest.raises(PayloadValidationError):
            await export_document(payload, 5)

        assert factory.start_count == 0

    @pytest.mark.asyncio
    async def test_render_delay_longer_than_timeout(self, factory_class, patch_factory, session_class, simple_payload):
        session = session_class(render_delay=1)
        factory = patch_factory(factory_class(session))

        with pytest.raises(ExportTimeoutError, match="(?i)timeout") as exc_info:
            await export_document(simple_payload, 0.1)

        assert exc_info.value.message == "Failed to perform the export under the given timeout of 0.1 seconds."
        assert factory.stop_count == 1

        # The abandoned workflow releases its session once its own wait gives up.
        await asyncio.sleep(0.2)
        assert session.close_count == 1

    @pytest.mark.asyncio
    async def test_render_delay_shorter_than_timeout(self, factory_class, patch_factory, session_class, simple_payload):
        session = session_class(render_delay=0.05)
        patch_factory(factory_class(session))

        assert (await export_document(simple_payload, 2)).startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_gates_wait_on_exported_page_not_blank_one(
        self, factory_class, patch_factory, session_class, simple_payload
    ):
        session = session_class(load_delay=0.1, render_delay=1.0)
        patch_factory(factory_class(session))

        with pytest.raises(ExportTimeoutError):
            await export_document(simple_payload, 0.5)

        assert session.gate_urls
        assert {url for _, url in session.gate_urls} == {simple_payload["url"]}

    @pytest.mark.asyncio
    async def test_navigation_commits_before_readiness(self, factory_class, patch_factory, session_class, simple_payload):
        session = session_class(load_delay=0.05)
        patch_factory(factory_class(session))

        await export_document(simple_payload, 2)

        operations = session.operations
        assert operations[0] == "goto"
        assert operations.index("goto") < operations.index("evaluate")
        assert "wait_for_load" in operations
        assert session.body_size_url == simple_payload["url"]

    @pytest.mark.asyncio
    async def test_network_idle_follows_payload(self, factory_class, patch_factory, session_class, simple_payload):
        plain = session_class()
        patch_factory(factory_class(plain))
        await export_document(simple_payload, 2)

        idle = session_class()
        patch_factory(factory_class(idle))
        await export_document({**simple_payload, "waitUntil": {"networkIdle": True}}, 2)

        assert "wait_for_network_idle" not in plain.operations
        assert "wait_for_network_idle" in idle.operations

    @pytest.mark.asyncio
    async def test_authenticated_export_navigates_again(self, factory_class, patch_factory, fake_session, auth_payload):
        patch_factory(factory_class(fake_session))

        await export_document(auth_payload, 5)

        operations = fake_session.operations
        reload_index = operations.index("reload")
        assert operations[reload_index + 1] == "goto"
        first_gate = min(i for i, op in enumerate(operations) if op == "wait_for_function")
        assert reload_index < first_gate

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["goto", "set_viewport", "wait_for_network_idle", "pdf", "reload"])
    async def test_failure_in_any_phase_releases_once(
        self, factory_class, patch_factory, session_class, auth_payload, operation
    ):
        session = session_class(failures={operation: EngineError(f"{operation} failed")})
        factory = patch_factory(factory_class(session))

        with pytest.raises(EngineError, match=f"{operation} failed"):
            await export_document(auth_payload, 5)

        assert session.close_count == 1
        assert factory.stop_count == 1

    @pytest.mark.asyncio
    async def test_close_failure_does_not_mask_result(self, factory_class, patch_factory, session_class, simple_payload):
        session = session_class(close_error=EngineError("Target closed"))
        patch_factory(factory_class(session))

        assert (await export_document(simple_payload, 5)).startswith(b"%PDF")
        assert session.close_count == 1

    @pytest.mark.asyncio
    async def test_launch_failure(self, factory_class, patch_factory, fake_session, simple_payload):
        factory = patch_factory(factory_class(fake_session, launch_error=EngineError("Failed to launch browser")))

        with pytest.raises(EngineError, match="Failed to launch browser"):
            await export_document(simple_payload, 5)

        assert fake_session.calls == []


class TestExportEngine:
    """Tests for the per-process mode."""

    @pytest.fixture
    def engine(self, factory_class, patch_factory, fake_session):
        patch_factory(factory_class(fake_session))
        return ExportEngine(ExportEngineConfig(timeout_in_seconds=5))

    @pytest.mark.asyncio
    async def test_lifecycle(self, engine):
        async with engine.running():
            assert engine.is_running
            factory = engine.browser_factory
            assert factory.start_count == 1

        assert engine.is_running is False
        assert factory.stop_count == 1

    @pytest.mark.asyncio
    async def test_export_requires_start(self, engine, simple_payload):
        with pytest.raises(EngineError, match="not started"):
            await engine.export_pdf(simple_payload)

    @pytest.mark.asyncio
    async def test_sessions_are_not_shared(self, factory_class, patch_factory, session_class, simple_payload):
        sessions = []

        class PerExportFactory(factory_class):
            async def create_session(self, tracer=None):
                await super().create_session(tracer)
                session = session_class()
                sessions.append(session)
                return session

        patch_factory(PerExportFactory())
        engine = ExportEngine()

        async with engine.running():
            results = await asyncio.gather(*(engine.export_pdf(simple_payload, 5) for _ in range(3)))

        assert len(results) == 3
        assert len(sessions) == 3
        assert all(session.close_count == 1 for session in sessions)

    @pytest.mark.asyncio
    async def test_stats(self, engine, simple_payload):
        async with engine.running():
            await engine.export_pdf(simple_payload)
            with pytest.raises(PayloadValidationError):
                await engine.export_pdf({"url": 42})
            with pytest.raises(ExportTimeoutError):
                engine.browser_factory.fake_session.render_delay = 1
                await engine.export_pdf(simple_payload, timeout_in_seconds=0.05)

            stats = engine.get_stats()

        assert stats['exports_attempted'] == 3
        assert stats['exports_successful'] == 1
        assert stats['exports_failed'] == 1
        assert stats['exports_timeout'] == 1
        assert stats['browser_running'] is True
        assert [error['state'] for error in stats['errors']] == ['failed', 'timed_out']

    @pytest.mark.asyncio
    async def test_uses_default_timeout(self, engine, simple_payload):
        async with engine.running():
            engine.browser_factory.fake_session.render_delay = 0.05
            assert (await engine.export_pdf(simple_payload)).startswith(b"%PDF")
