"""
End-of-clip policy.

Streams aligned on their marks rarely end together. The controller decides
what the group does when one of them reaches its end.
"""

from __future__ import annotations

import threading
from typing import Optional, Sequence

import structlog

from anglesync.models.state import EndPolicy
from anglesync.playback.base import PlaybackCollaborator, Subscription

logger = structlog.get_logger(__name__)


class EndPolicyController:
    """
    Reacts to ``ended`` signals according to the group's end policy.

    Subscriptions are kept in a list keyed by stream index and rebuilt from
    scratch on every ``bind``, so re-binding never stacks duplicate
    listeners and removed streams are released.
    """

    def __init__(
        self,
        policy: EndPolicy = EndPolicy.STOP_ALL_AT_FIRST_END,
        lock: Optional[threading.RLock] = None,
    ):
        self.policy = policy
        # Shared with the engine so ended handling is serialized with commands
        self._lock = lock or threading.RLock()
        self._players: list[PlaybackCollaborator] = []
        self._subscriptions: list[Subscription] = []

    @property
    def bound_count(self) -> int:
        return len(self._subscriptions)

    def set_policy(self, policy: EndPolicy, players: Sequence[PlaybackCollaborator] | None = None) -> None:
        """Change the policy; only future ended signals are affected."""
        self.policy = EndPolicy(policy)
        self.bind(self._players if players is None else players)

    def bind(self, players: Sequence[PlaybackCollaborator]) -> None:
        """Release every existing subscription and subscribe to ``players``."""
        with self._lock:
            self.unbind()
            self._players = list(players)
            for index, player in enumerate(self._players):
                self._subscriptions.append(
                    player.ended.subscribe(self._make_handler(index))
                )
        logger.debug("End listeners bound", streams=len(self._players), policy=self.policy.value)

    def unbind(self) -> None:
        with self._lock:
            for subscription in self._subscriptions:
                subscription.unsubscribe()
            self._subscriptions = []

    def handle_ended(self, index: int) -> None:
        """Apply the current policy to stream ``index`` having ended."""
        with self._lock:
            if not 0 <= index < len(self._players):
                logger.debug("Ended signal for missing stream", index=index)
                return

            logger.info("Stream reached its end", index=index, policy=self.policy.value)
            self._apply(index)

    def _apply(self, index: int) -> None:
        if self.policy == EndPolicy.STOP_ALL_AT_FIRST_END:
            # The whole group, including streams already paused or ended
            for player in self._players:
                player.pause()
        elif self.policy == EndPolicy.FREEZE_FINISHED:
            self._players[index].pause()
        elif self.policy == EndPolicy.LOOP_FINISHED:
            player = self._players[index]
            player.current_time = 0.0
            player.play()

    def _make_handler(self, index: int):
        def on_ended(*_args) -> None:
            self.handle_ended(index)
        return on_ended
