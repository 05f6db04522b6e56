from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from canon.event import EventBuilder, normalize_error, resolve_outcome


class _FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.t = start

    def now(self) -> datetime:
        return datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self.t


class _PaymentError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.code = "card_declined"
        self.retriable = False


def _builder(clock: _FakeClock | None = None) -> EventBuilder:
    return EventBuilder({"request_id": "req_test", "method": "POST", "path": "/checkout"}, clock=clock or _FakeClock())


def test_enrich_and_set_accumulate_context() -> None:
    builder = _builder()
    builder.enrich({"user": {"id": "u123", "plan": "premium"}})
    builder.enrich({"user": {"country": "DE"}})
    builder.set("payment.provider", "stripe")

    event = builder.get()
    assert event["user"] == {"id": "u123", "plan": "premium", "country": "DE"}
    assert event["payment"] == {"provider": "stripe"}


def test_get_returns_independent_copy() -> None:
    builder = _builder()
    builder.enrich({"cart": {"items": [1, 2]}})

    event = builder.get()
    event["cart"]["items"].append(3)

    assert builder.get()["cart"]["items"] == [1, 2]


def test_enrich_does_not_alias_caller_data() -> None:
    builder = _builder()
    partial: dict[str, Any] = {"cart": {"items": [1]}}
    builder.enrich(partial)
    partial["cart"]["items"].append(2)

    assert builder.get()["cart"]["items"] == [1]


def test_finalize_computes_duration_status_and_outcome() -> None:
    clock = _FakeClock(start=100.0)
    builder = _builder(clock)
    clock.t = 100.25

    event = builder.finalize("success", 201)

    assert event["duration_ms"] == 250.0
    assert event["status_code"] == 201
    assert event["outcome"] == "success"
    assert builder.is_finalized()


def test_duration_is_never_negative() -> None:
    clock = _FakeClock(start=100.0)
    builder = _builder(clock)
    clock.t = 99.0

    assert builder.finalize("success", 200)["duration_ms"] == 0.0


def test_finalize_is_idempotent() -> None:
    clock = _FakeClock()
    builder = _builder(clock)
    first = builder.finalize("success", 200)
    clock.t += 5
    second = builder.finalize("aborted", 499)

    assert first == second


def test_mutations_after_finalize_are_ignored_with_warning(diagnostics: list[str]) -> None:
    builder = _builder()
    builder.finalize("success", 200)

    builder.enrich({"late": True})
    builder.set("later", 1)
    builder.mark_error(ValueError("too late"))

    event = builder.get()
    assert "late" not in event
    assert "later" not in event
    assert "error" not in event
    assert event["outcome"] == "success"
    warnings = [m for m in diagnostics if m.startswith("WARNING|")]
    assert len(warnings) == 3
    assert all("req_test" in m and "after finalization" in m for m in warnings)


def test_mark_error_sets_error_and_outcome() -> None:
    builder = _builder()
    builder.mark_error(_PaymentError("Payment failed"))

    event = builder.get()
    assert event["outcome"] == "error"
    assert event["error"] == {
        "type": "_PaymentError",
        "message": "Payment failed",
        "code": "card_declined",
        "retriable": False,
    }
    assert builder.finalize("success", 200)["outcome"] == "error"


def test_marked_error_wins_over_abort() -> None:
    builder = _builder()
    builder.mark_error("boom")
    assert builder.finalize("aborted", 499)["outcome"] == "error"


def test_error_after_abort_keeps_aborted_outcome() -> None:
    builder = _builder()
    builder.set("outcome", "aborted")
    builder.mark_error(RuntimeError("late"))

    assert builder.get()["outcome"] == "aborted"
    event = builder.finalize("aborted", 499)
    assert event["outcome"] == "aborted"
    assert event["error"] == {"type": "RuntimeError", "message": "late"}


@pytest.mark.parametrize(
    ("hint", "status", "marked", "expected"),
    [
        ("success", 200, False, "success"),
        ("success", 503, False, "error"),
        ("aborted", 503, False, "aborted"),
        ("aborted", 499, False, "aborted"),
        ("success", 200, True, "error"),
    ],
)
def test_resolve_outcome_policy(hint: str, status: int, marked: bool, expected: str) -> None:
    assert resolve_outcome(hint, status, error_marked=marked) == expected  # type: ignore[arg-type]


def test_normalize_error_shapes() -> None:
    assert normalize_error(ValueError("")).message == "Unknown error"
    assert normalize_error(KeyError("k")).type == "KeyError"

    from_mapping = normalize_error({"type": "Upstream", "message": "bad gateway", "code": 502, "retriable": True})
    assert from_mapping.type == "Upstream"
    assert from_mapping.message == "bad gateway"
    assert from_mapping.code is None
    assert from_mapping.retriable is True

    assert normalize_error({"oops": 1}).message == "{'oops': 1}"
    assert normalize_error(42).model_dump(exclude_none=True) == {"type": "Error", "message": "42"}
