"""
On-air playback sequencing per broadcast layer: idle -> in -> loop -> out -> idle.

Transitions run on timers. Every transition bumps the layer's version and a
timer only acts when the version it captured is still current, so a timer
whose layer has moved on in the meantime does nothing.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

IN_FLOOR_MS = 500
OUT_FLOOR_MS = 500
SWITCH_OUT_FLOOR_MS = 300

Scheduler = Callable[[float, Callable[[], None]], Any]


def asyncio_scheduler(delay_seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay_seconds, callback)


def _field(animation: Any, name: str, default: Any = None) -> Any:
    if isinstance(animation, dict):
        return animation.get(name, default)
    return getattr(animation, name, default)


def phase_duration(animations: Iterable[Any], phase: str, floor_ms: int = IN_FLOOR_MS) -> int:
    """Worst-case end time (delay + duration, ms) of the phase's animations, never below ``floor_ms``."""
    ends = [
        int(_field(a, "delay", 0) or 0) + int(_field(a, "duration", 0) or 0)
        for a in animations
        if _field(a, "phase") == phase
    ]
    return max([floor_ms] + ends)


@dataclass
class OnAirState:
    template_id: str
    state: str = "in"
    pending_switch: Optional[str] = None
    version: int = 0


@dataclass
class OnAirSequencer:
    scheduler: Scheduler = asyncio_scheduler
    animations: Dict[str, List[Any]] = field(default_factory=dict)
    layers: Dict[str, OnAirState] = field(default_factory=dict)
    _versions: Dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def set_animations(self, template_id: str, animations: Sequence[Any]):
        self.animations[template_id] = list(animations)

    def states(self) -> Dict[str, OnAirState]:
        return dict(self.layers)

    def get_state(self, layer_id: str) -> Optional[OnAirState]:
        return self.layers.get(layer_id)

    def _bump(self, layer_id: str) -> int:
        version = self._versions.get(layer_id, 0) + 1
        self._versions[layer_id] = version
        return version

    def _schedule(self, delay_ms: int, callback: Callable[[], None]):
        self.scheduler(delay_ms / 1000.0, callback)

    def _is_current(self, layer_id: str, version: int) -> bool:
        current = self.layers.get(layer_id)
        return current is not None and current.version == version

    def play_in(self, template_id: str, layer_id: str) -> OnAirState:
        """Put ``template_id`` on air in ``layer_id``; it advances to loop once its IN animations finish."""
        state = OnAirState(template_id=template_id, state="in", version=self._bump(layer_id))
        self.layers[layer_id] = state
        duration = phase_duration(self.animations.get(template_id, []), "in", IN_FLOOR_MS)
        logger.info(f"Layer {layer_id}: IN {template_id} ({duration}ms)")

        def advance_to_loop():
            current = self.layers.get(layer_id)
            if (
                self._is_current(layer_id, state.version)
                and current.template_id == template_id
                and current.state == "in"
            ):
                self.set_state(layer_id, "loop")

        self._schedule(duration, advance_to_loop)
        return state

    def play_out(self, layer_id: str, floor_ms: int = OUT_FLOOR_MS) -> Optional[OnAirState]:
        """Take the layer's template off air. A no-op when nothing is on air."""
        current = self.layers.get(layer_id)
        if current is None:
            return None
        current.state = "out"
        current.version = self._bump(layer_id)
        duration = phase_duration(self.animations.get(current.template_id, []), "out", floor_ms)
        logger.info(f"Layer {layer_id}: OUT {current.template_id} ({duration}ms)")

        version = current.version
        self._schedule(duration, lambda: self._finish_out(layer_id, version))
        return current

    def _finish_out(self, layer_id: str, version: int):
        current = self.layers.get(layer_id)
        if not self._is_current(layer_id, version) or current.state != "out":
            return
        if current.pending_switch:
            self.play_in(current.pending_switch, layer_id)
        else:
            self.clear(layer_id)

    def switch_template(self, new_template_id: str, layer_id: str) -> Optional[OnAirState]:
        """Play OUT the current template, then IN ``new_template_id``."""
        current = self.layers.get(layer_id)
        if current is None:
            return self.play_in(new_template_id, layer_id)
        if current.template_id == new_template_id:
            return current
        current.pending_switch = new_template_id
        return self.play_out(layer_id)

    def switch_layer_template(self, layer_id: str, layer_templates: Sequence[str]) -> Optional[OnAirState]:
        """Cycle the layer to the next of ``layer_templates``. Needs at least two templates."""
        if len(layer_templates) < 2:
            return self.layers.get(layer_id)
        current = self.layers.get(layer_id)
        if current is None:
            return self.play_in(layer_templates[0], layer_id)

        index = layer_templates.index(current.template_id) if current.template_id in layer_templates else -1
        next_template_id = layer_templates[(index + 1) % len(layer_templates)]
        if next_template_id == current.template_id:
            return current
        current.pending_switch = next_template_id
        return self.play_out(layer_id, floor_ms=SWITCH_OUT_FLOOR_MS)

    def set_state(self, layer_id: str, state: str) -> Optional[OnAirState]:
        current = self.layers.get(layer_id)
        if current is None:
            return None
        current.state = state
        current.version = self._bump(layer_id)
        logger.debug(f"Layer {layer_id}: {current.template_id} -> {state}")
        return current

    def clear(self, layer_id: str):
        if self.layers.pop(layer_id, None) is not None:
            self._bump(layer_id)
            logger.info(f"Layer {layer_id}: cleared")
