"""Session timer module for sanctuary.

Public API:
    SessionTimer -- Countdown state machine for one viewing session
    PlaybackControl -- Interface for media paused in lockstep with the timer
    TimerRunner -- asyncio driver issuing one tick per second
"""

from sanctuary.timer.runner import TimerRunner
from sanctuary.timer.session import PlaybackControl, SessionTimer

__all__ = ["PlaybackControl", "SessionTimer", "TimerRunner"]
