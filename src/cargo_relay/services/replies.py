"""Matching free-form replies to the prompts that asked for them."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta

from cargo_relay.domain.prompts import PendingPrompt, PromptKind
from cargo_relay.services.clock import Clock, SystemClock
from cargo_relay.services.store import ExpiringStore

logger = logging.getLogger(__name__)


@dataclass
class ReplyCorrelator:
    """Single-use claim checks for outstanding prompts.

    A prompt id is the `chat:message` pair of the prompt message, which
    Telegram hands back in `reply_to_message`. Each actor holds at most one
    live prompt per kind; registering another one drops the older prompt.
    Prompts that were answered, cancelled, superseded or expired are
    remembered as spent for `spent_ttl_seconds` so late replies can be told
    apart from ordinary messages.
    """

    clock: Clock = field(default_factory=SystemClock)
    ttl_seconds: float = 600
    spent_ttl_seconds: float = 86400
    _prompts: ExpiringStore[str, PendingPrompt] = field(init=False, repr=False)
    _spent: ExpiringStore[str, PromptKind] = field(init=False, repr=False)
    _latest: dict[tuple[int, PromptKind], str] = field(
        init=False, repr=False, default_factory=dict
    )
    _lock: threading.Lock = field(
        init=False, repr=False, default_factory=threading.Lock
    )

    def __post_init__(self) -> None:
        self._spent = ExpiringStore(self.spent_ttl_seconds, clock=self.clock)
        self._prompts = ExpiringStore(
            self.ttl_seconds,
            clock=self.clock,
            on_expire=lambda prompt_id, prompt: self._spent.put(prompt_id, prompt.kind),
        )

    def register(
        self,
        prompt_id: str,
        kind: PromptKind,
        actor_id: int,
        payload: dict[str, str] | None = None,
        ttl_seconds: float | None = None,
    ) -> PendingPrompt:
        """Track a prompt until it is answered, cancelled or expires."""
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        created_at = self.clock.now()
        prompt = PendingPrompt(
            prompt_id=prompt_id,
            kind=kind,
            actor_id=actor_id,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl),
            payload=dict(payload or {}),
        )
        with self._lock:
            self._prompts.evict()
            superseded = self._latest.get((actor_id, kind))
            if superseded is not None and superseded != prompt_id:
                if self._prompts.discard(superseded):
                    self._spent.put(superseded, kind)
                logger.debug(
                    "Prompt superseded",
                    extra={"prompt_id": superseded, "actor_id": actor_id},
                )
            self._prompts.put(prompt_id, prompt, ttl_seconds=ttl)
            self._latest[(actor_id, kind)] = prompt_id
        return prompt

    def peek(self, prompt_id: str) -> PendingPrompt | None:
        """Return a live prompt without claiming it."""
        return self._prompts.get(prompt_id)

    def resolve(self, prompt_id: str) -> PendingPrompt | None:
        """Claim a live prompt; only the first caller gets it."""
        with self._lock:
            prompt = self._prompts.consume(prompt_id)
            if prompt is not None:
                self._spend(prompt)
        return prompt

    def restore(self, prompt: PendingPrompt) -> bool:
        """Reinstate a claimed prompt whose follow-up work failed.

        The prompt keeps its original expiry. Nothing is restored once that
        has passed or once the actor holds a newer live prompt of the kind.
        """
        remaining = (prompt.expires_at - self.clock.now()).total_seconds()
        if remaining <= 0:
            return False
        key = (prompt.actor_id, prompt.kind)
        with self._lock:
            if self._prompts.get(prompt.prompt_id) is not None:
                return False
            newer = self._latest.get(key)
            if newer is not None and self._prompts.get(newer) is not None:
                return False
            self._spent.discard(prompt.prompt_id)
            self._prompts.put(prompt.prompt_id, prompt, ttl_seconds=remaining)
            self._latest[key] = prompt.prompt_id
        logger.debug(
            "Prompt restored",
            extra={"prompt_id": prompt.prompt_id, "actor_id": prompt.actor_id},
        )
        return True

    def cancel(self, prompt_id: str) -> bool:
        """Withdraw a prompt at the user's request."""
        return self.resolve(prompt_id) is not None

    def cancel_actor(self, actor_id: int) -> int:
        """Withdraw every live prompt held by an actor."""
        cancelled = 0
        with self._lock:
            for key in [key for key in self._latest if key[0] == actor_id]:
                prompt = self._prompts.consume(self._latest[key])
                if prompt is not None:
                    self._spend(prompt)
                    cancelled += 1
                self._latest.pop(key, None)
        return cancelled

    def is_spent(self, prompt_id: str) -> bool:
        """Return true for a recent prompt that can no longer be answered."""
        if self._prompts.get(prompt_id) is not None:
            return False
        return self._spent.get(prompt_id) is not None

    def pending(self) -> int:
        """Return the number of live prompts."""
        with self._lock:
            self._prompts.evict()
            stale = [
                key
                for key, prompt_id in self._latest.items()
                if self._prompts.get(prompt_id) is None
            ]
            for key in stale:
                del self._latest[key]
            return len(self._prompts)

    def _spend(self, prompt: PendingPrompt) -> None:
        self._spent.put(prompt.prompt_id, prompt.kind)
        key = (prompt.actor_id, prompt.kind)
        if self._latest.get(key) == prompt.prompt_id:
            del self._latest[key]
