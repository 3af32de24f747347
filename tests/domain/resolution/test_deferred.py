from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from applinks.adapters.memory import InMemoryAppStateStore, StaticInstallReferrer
from applinks.domain.errors import (
    ExpiredLinkError,
    NetworkError,
    NoHandlerError,
    NotFoundError,
    ResolutionError,
    UnsupportedPlatformError,
    ValidationError,
)
from applinks.domain.identifiers import Identifier
from applinks.domain.processed_ids import ProcessedIdentifierStore
from applinks.domain.resolution import (
    DeferredResolutionRecoverer,
    ListenerRegistry,
    RecoveryOutcome,
    RecoveryState,
    ResolutionContext,
    ResolutionPipeline,
    ResolutionResult,
    SchemeStage,
    TransformStage,
    parse_referrer_parameters,
)
from tests.helpers.fakes import (
    NOW,
    FakeServiceClient,
    RecordingListener,
    UnwritableStateStore,
    make_link,
    make_visit,
    run_inline,
)

if TYPE_CHECKING:
    from applinks.domain.links import VisitDetails
    from applinks.domain.ports import InstallReferrerSource, ReferrerDetails

REFERRER = "utm_source=campaign&applinks_visit_id=visit-1"


class CountingStage(TransformStage):
    def __init__(self) -> None:
        self.calls = 0

    def can_handle(self, identifier: Identifier) -> bool:
        return identifier.scheme == "myapp"

    async def apply(self, context: ResolutionContext, identifier: Identifier) -> ResolutionContext:
        _ = identifier
        self.calls += 1
        return context


class Harness:
    def __init__(
        self,
        *,
        referrer_source: InstallReferrerSource | None,
        state: InMemoryAppStateStore | None = None,
        client: FakeServiceClient | None = None,
    ) -> None:
        self.state = state or InMemoryAppStateStore()
        self.processed = ProcessedIdentifierStore(self.state)
        self.client = client or FakeServiceClient()
        self.stage = CountingStage()
        self.pipeline = ResolutionPipeline([self.stage, SchemeStage(["myapp"])])
        self.listeners = ListenerRegistry(dispatcher=run_inline)
        self.listener = RecordingListener()
        self.listeners.register(self.listener)
        self.recoverer = DeferredResolutionRecoverer(
            state=self.state,
            processed_ids=self.processed,
            client=self.client,
            pipeline=self.pipeline,
            listeners=self.listeners,
            referrer_source=referrer_source,
            clock=lambda: NOW,
        )

    def run(self) -> RecoveryOutcome:
        return asyncio.run(self.recoverer.run())


def _harness_with_visit(referrer: str = REFERRER, **link_overrides: object) -> Harness:
    link = make_link(deep_link_path="myapp://product/42?ref=promo", **link_overrides)
    client = FakeServiceClient(visits={"visit-1": make_visit("visit-1", link)})
    return Harness(referrer_source=StaticInstallReferrer(referrer), client=client)


def test_parse_referrer_parameters_skips_malformed_pairs() -> None:
    params = parse_referrer_parameters("a=1&broken&b=x=y&&c=")

    assert params == {"a": "1", "b": "x=y", "c": ""}


def test_successful_recovery_resolves_and_delivers() -> None:
    link = make_link(deep_link_path="myapp://product/42?ref=promo")
    client = FakeServiceClient(visits={"visit-1": make_visit("visit-1", link)})
    source = StaticInstallReferrer(
        REFERRER, click_timestamp_seconds=111, install_begin_timestamp_seconds=222
    )
    harness = Harness(referrer_source=source, client=client)

    outcome = harness.run()

    assert outcome.succeeded
    assert outcome.state is RecoveryState.RESOLVED
    assert outcome.states == [
        RecoveryState.IDLE,
        RecoveryState.CONNECTING,
        RecoveryState.REFERRER_AVAILABLE,
        RecoveryState.PARSING_PAYLOAD,
        RecoveryState.PAYLOAD_FOUND,
        RecoveryState.DEDUPE_CHECK,
        RecoveryState.NEW_VISIT,
        RecoveryState.REMOTE_VISIT_LOOKUP,
        RecoveryState.VISIT_RESOLVED,
        RecoveryState.RESOLVED,
    ]
    assert harness.client.visit_lookups == ["visit-1"]
    assert harness.state.is_first_launch_completed()
    assert source.disconnect_calls == 1
    assert "visit-1" in harness.processed

    (result,) = harness.listener.results
    assert result.path == "product/42"
    assert dict(result.params) == {"ref": "promo"}
    assert result.metadata["source"] == "install_referrer"
    assert result.metadata["visit_id"] == "visit-1"
    assert result.metadata["link_title"] == "Summer sale"
    assert result.metadata["referrer_click_time"] == 111
    assert result.metadata["install_begin_time"] == 222
    assert harness.listener.errors == []


def test_visit_is_recorded_before_result_is_delivered() -> None:
    harness = _harness_with_visit()
    seen: list[bool] = []

    class CheckingListener:
        def on_result(self, result: ResolutionResult) -> None:
            _ = result
            seen.append("visit-1" in harness.processed)

        def on_error(self, error: Exception) -> None:
            _ = error

    harness.listeners.register(CheckingListener())
    harness.run()

    assert seen == [True]


def test_payload_falls_back_to_original_url() -> None:
    link = make_link(deep_link_path="/product/42", original_url="myapp://landing")
    client = FakeServiceClient(visits={"visit-1": make_visit("visit-1", link)})
    harness = Harness(referrer_source=StaticInstallReferrer(REFERRER), client=client)

    outcome = harness.run()

    assert outcome.result is not None
    assert outcome.result.original_identifier == Identifier.parse("myapp://landing")
    assert outcome.result.path == "landing"


def test_not_first_launch_is_skipped() -> None:
    source = StaticInstallReferrer(REFERRER)
    harness = Harness(
        referrer_source=source, state=InMemoryAppStateStore(first_launch_completed=True)
    )

    outcome = harness.run()

    assert outcome.state is RecoveryState.SKIPPED
    assert source.connect_calls == 0
    assert harness.listener.results == []
    assert harness.listener.errors == []


def test_second_run_is_skipped() -> None:
    harness = _harness_with_visit()

    first = harness.run()
    second = harness.run()

    assert first.succeeded
    assert second.state is RecoveryState.SKIPPED
    assert harness.client.visit_lookups == ["visit-1"]
    assert len(harness.listener.results) == 1


def test_missing_visit_id_is_quiet() -> None:
    source = StaticInstallReferrer("utm_source=campaign")
    harness = Harness(referrer_source=source)

    outcome = harness.run()

    assert outcome.state is RecoveryState.NO_PAYLOAD
    assert outcome.error is None
    assert harness.listener.errors == []
    assert harness.state.is_first_launch_completed()
    assert source.disconnect_calls == 1
    assert not source.connected


def test_already_processed_visit_is_quiet() -> None:
    harness = _harness_with_visit()
    harness.processed.add("visit-1")

    outcome = harness.run()

    assert outcome.state is RecoveryState.ALREADY_PROCESSED
    assert harness.client.visit_lookups == []
    assert harness.listener.results == []
    assert harness.listener.errors == []
    assert harness.state.is_first_launch_completed()


@pytest.mark.parametrize(
    ("reason", "expected"),
    [
        ("unsupported", RecoveryState.UNSUPPORTED),
        ("service_unavailable", RecoveryState.SERVICE_ERROR),
    ],
)
def test_referrer_failures_release_connection_and_report(
    reason: str, expected: RecoveryState
) -> None:
    error = UnsupportedPlatformError("referrer failed", reason=reason)  # type: ignore[arg-type]
    source = StaticInstallReferrer(error=error)
    harness = Harness(referrer_source=source)

    outcome = harness.run()

    assert outcome.state is expected
    assert outcome.error is error
    assert source.connect_calls == 1
    assert source.disconnect_calls == 1
    assert harness.listener.errors == [error]
    assert harness.state.is_first_launch_completed()


def test_missing_referrer_source_is_unsupported() -> None:
    harness = Harness(referrer_source=None)

    outcome = harness.run()

    assert outcome.state is RecoveryState.UNSUPPORTED
    assert isinstance(outcome.error, UnsupportedPlatformError)
    assert harness.state.is_first_launch_completed()


def test_unexpected_referrer_failure_is_wrapped() -> None:
    class BrokenReferrer(StaticInstallReferrer):
        def get_referrer(self) -> ReferrerDetails:
            raise OSError("binder died")

    source = BrokenReferrer(REFERRER)
    harness = Harness(referrer_source=source)

    outcome = harness.run()

    assert outcome.state is RecoveryState.SERVICE_ERROR
    assert isinstance(outcome.error, UnsupportedPlatformError)
    assert outcome.error.reason == "unknown"
    assert source.disconnect_calls == 1


def test_visit_lookup_failure_is_reported() -> None:
    client = FakeServiceClient(error=NetworkError("Network error: offline"))
    harness = Harness(referrer_source=StaticInstallReferrer(REFERRER), client=client)

    outcome = harness.run()

    assert outcome.state is RecoveryState.FAILED
    assert RecoveryState.VISIT_LOOKUP_FAILED in outcome.states
    assert isinstance(outcome.error, NetworkError)
    assert harness.listener.errors == [outcome.error]
    assert "visit-1" not in harness.processed
    assert harness.state.is_first_launch_completed()


def test_visit_without_link_is_not_found() -> None:
    client = FakeServiceClient(visits={"visit-1": make_visit("visit-1", None)})
    harness = Harness(referrer_source=StaticInstallReferrer(REFERRER), client=client)

    outcome = harness.run()

    assert outcome.state is RecoveryState.FAILED
    assert isinstance(outcome.error, NotFoundError)


def test_expired_link_never_reaches_the_pipeline() -> None:
    harness = _harness_with_visit(expires_at=NOW - timedelta(seconds=1))

    outcome = harness.run()

    assert outcome.state is RecoveryState.FAILED
    assert isinstance(outcome.error, ExpiredLinkError)
    assert outcome.result is None
    assert harness.stage.calls == 0
    assert "visit-1" not in harness.processed
    assert harness.listener.results == []
    assert harness.listener.errors == [outcome.error]


def test_link_expiring_later_is_resolved() -> None:
    harness = _harness_with_visit(expires_at=NOW + timedelta(days=1))

    outcome = harness.run()

    assert outcome.succeeded
    assert harness.stage.calls == 1


def test_unclaimed_payload_reports_no_handler() -> None:
    link = make_link(deep_link_path="otherapp://x", original_url="https://elsewhere.test")
    client = FakeServiceClient(visits={"visit-1": make_visit("visit-1", link)})
    harness = Harness(referrer_source=StaticInstallReferrer(REFERRER), client=client)

    outcome = harness.run()

    assert outcome.state is RecoveryState.FAILED
    assert isinstance(outcome.error, NoHandlerError)
    assert "visit-1" not in harness.processed


def test_malformed_payload_is_reported_as_validation_error() -> None:
    harness = _harness_with_visit()
    link = make_link(deep_link_path="myapp://[broken")
    harness.client.visits["visit-1"] = make_visit("visit-1", link)

    outcome = harness.run()

    assert outcome.state is RecoveryState.FAILED
    assert isinstance(outcome.error, ValidationError)
    assert outcome.result is None
    assert harness.listener.errors == [outcome.error]
    assert "visit-1" not in harness.processed
    assert harness.state.is_first_launch_completed()


def test_unexpected_failure_is_reported_not_raised() -> None:
    source = StaticInstallReferrer(REFERRER)
    # no visit registered, so the lookup raises KeyError
    harness = Harness(referrer_source=source, client=FakeServiceClient())

    outcome = harness.run()

    assert outcome.state is RecoveryState.FAILED
    assert RecoveryState.REMOTE_VISIT_LOOKUP in outcome.states
    assert isinstance(outcome.error, ResolutionError)
    assert "visit-1" in str(outcome.error)
    assert harness.listener.errors == [outcome.error]
    assert harness.state.is_first_launch_completed()
    assert source.disconnect_calls == 1


def test_visit_recorded_live_during_lookup_is_not_delivered_again() -> None:
    harness = _harness_with_visit()
    lookup = harness.client.fetch_visit_details

    async def recording_lookup(visit_id: str) -> VisitDetails:
        visit = await lookup(visit_id)
        assert harness.processed.add(visit_id)
        return visit

    harness.client.fetch_visit_details = recording_lookup  # type: ignore[method-assign]

    outcome = harness.run()

    assert outcome.state is RecoveryState.ALREADY_PROCESSED
    assert RecoveryState.VISIT_RESOLVED in outcome.states
    assert harness.stage.calls == 1
    assert harness.listener.results == []
    assert harness.listener.errors == []


def test_failed_processed_id_save_still_delivers() -> None:
    link = make_link(deep_link_path="myapp://product/42")
    client = FakeServiceClient(visits={"visit-1": make_visit("visit-1", link)})
    harness = Harness(
        referrer_source=StaticInstallReferrer(REFERRER),
        state=UnwritableStateStore(),
        client=client,
    )

    outcome = harness.run()

    assert outcome.state is RecoveryState.RESOLVED
    assert len(harness.listener.results) == 1
    assert harness.state.is_first_launch_completed()
