"""Tests for prompt registration and reply matching."""

import threading

from cargo_relay.domain.prompts import PromptKind, prompt_id_for
from cargo_relay.services.replies import ReplyCorrelator
from tests.conftest import ManualClock


def test_resolve_is_single_use() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5, payload={"x": "y"})

    first = correlator.resolve("1:10")
    second = correlator.resolve("1:10")

    assert first is not None
    assert first.payload == {"x": "y"}
    assert second is None
    assert correlator.is_spent("1:10")


def test_peek_does_not_claim() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5)

    assert correlator.peek("1:10") is not None
    assert correlator.resolve("1:10") is not None


def test_prompt_expires_after_ttl() -> None:
    clock = ManualClock()
    correlator = ReplyCorrelator(clock=clock, ttl_seconds=600)
    prompt = correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5)

    assert (prompt.expires_at - prompt.created_at).total_seconds() == 600
    clock.advance(600)

    assert correlator.resolve("1:10") is None
    assert correlator.is_spent("1:10")


def test_new_prompt_supersedes_same_kind_for_actor() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5)
    correlator.register("1:11", PromptKind.START_INTAKE, actor_id=5)
    correlator.register("1:12", PromptKind.EDIT_SHIPMENT, actor_id=5)

    assert correlator.peek("1:10") is None
    assert correlator.is_spent("1:10")
    assert correlator.peek("1:11") is not None
    assert correlator.peek("1:12") is not None
    assert correlator.pending() == 2


def test_cancel_actor_drops_only_that_actor() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5)
    correlator.register("1:11", PromptKind.START_INTAKE, actor_id=5)
    correlator.register("2:10", PromptKind.EDIT_SHIPMENT, actor_id=6)

    assert correlator.cancel_actor(5) == 2
    assert correlator.cancel_actor(5) == 0
    assert correlator.pending() == 1
    assert correlator.cancel("2:10") is True
    assert correlator.cancel("2:10") is False


def test_unknown_prompt_is_not_spent() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())

    assert correlator.is_spent(prompt_id_for(1, 99)) is False
    assert prompt_id_for(1, 99) == "1:99"


def test_concurrent_resolve_has_exactly_one_winner() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5)
    barrier = threading.Barrier(8)
    results = []

    def claim() -> None:
        barrier.wait()
        results.append(correlator.resolve("1:10"))

    threads = [threading.Thread(target=claim) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 8
    assert len([prompt for prompt in results if prompt is not None]) == 1


def test_restore_keeps_original_expiry() -> None:
    clock = ManualClock()
    correlator = ReplyCorrelator(clock=clock, ttl_seconds=600)
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5, payload={"x": "y"})
    clock.advance(100)
    claimed = correlator.resolve("1:10")
    assert claimed is not None

    assert correlator.restore(claimed) is True
    assert correlator.restore(claimed) is False
    assert correlator.is_spent("1:10") is False
    assert correlator.peek("1:10") == claimed

    clock.advance(500)
    assert correlator.peek("1:10") is None
    assert correlator.is_spent("1:10")
    assert correlator.restore(claimed) is False


def test_restore_yields_to_newer_prompt() -> None:
    correlator = ReplyCorrelator(clock=ManualClock())
    correlator.register("1:10", PromptKind.EDIT_SHIPMENT, actor_id=5)
    claimed = correlator.resolve("1:10")
    assert claimed is not None
    correlator.register("1:11", PromptKind.EDIT_SHIPMENT, actor_id=5)

    assert correlator.restore(claimed) is False
    assert correlator.is_spent("1:10")
    assert correlator.peek("1:11") is not None
