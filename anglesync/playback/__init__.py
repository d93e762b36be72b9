"""Playback collaborators and end-of-clip handling."""

from anglesync.playback.base import (
    PlaybackCollaborator,
    PlaybackState,
    Signal,
    Subscription,
)
from anglesync.playback.policy import EndPolicyController
from anglesync.playback.simulated import SimulatedPlayer

__all__ = [
    "PlaybackCollaborator",
    "PlaybackState",
    "Signal",
    "Subscription",
    "EndPolicyController",
    "SimulatedPlayer",
]
