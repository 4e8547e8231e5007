# audible cues for incoming events, rendered as terminal bells
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from utils.logger import get_logger

_logger = get_logger(__name__)

URGENT_REPEAT = 3
URGENT_GAP_SEC = 0.6

# frequency (Hz), duration (s); a two-tone chime for when no bell can ring
FALLBACK_TONES: Tuple[Tuple[int, float], ...] = ((800, 0.1), (1000, 0.1))


@dataclass(frozen=True)
class SoundPlan:
    repeat: int
    gap_sec: float


def plan_for(urgent: bool) -> SoundPlan:
    if urgent:
        return SoundPlan(repeat=URGENT_REPEAT, gap_sec=URGENT_GAP_SEC)
    return SoundPlan(repeat=1, gap_sec=0.0)


class SoundPlayer:
    """
    Plays cues through `bell` (usually App.bell). When the bell raises,
    the player falls back to `tone_player`, which receives the fallback
    tone pair. Playback never raises into the caller.
    """

    def __init__(
        self,
        bell: Optional[Callable[[], None]] = None,
        *,
        tone_player: Optional[Callable[[Tuple[Tuple[int, float], ...]], None]] = None,
        enabled: bool = True,
    ) -> None:
        self.bell = bell
        self.tone_player = tone_player
        self.enabled = enabled
        self.plays = 0
        self.last_plan: Optional[SoundPlan] = None

    def _ring_once(self) -> None:
        if self.bell is not None:
            try:
                self.bell()
                return
            except (OSError, RuntimeError) as exc:
                _logger.debug(f"Bell unavailable, using fallback tones: {exc}")
        if self.tone_player is not None:
            self.tone_player(FALLBACK_TONES)

    async def play(self, urgent: bool = False) -> None:
        if not self.enabled:
            return
        plan = plan_for(urgent)
        self.plays += 1
        self.last_plan = plan
        for i in range(plan.repeat):
            self._ring_once()
            if i < plan.repeat - 1:
                await asyncio.sleep(plan.gap_sec)
