# src/avatutor/control/animation.py
from __future__ import annotations
import random
from dataclasses import dataclass
from datetime import datetime
from avatutor.control.characters import CharacterProfile
from avatutor.control.mapper import cue_duration_ms, map_emotion_to_expression
from avatutor.core.config import AnimationConfig, settings
from avatutor.core.types import (
    AnimationCue,
    AnimationState,
    EmotionHistoryEntry,
    EmotionLabel,
    EmotionState,
    neutral_blendshapes,
)

# Target pose per label at full intensity; scaled by the turn's intensity.
TARGET_POSES: dict[EmotionLabel, dict[str, float]] = {
    EmotionLabel.NEUTRAL: {},
    EmotionLabel.HAPPY: {
        "Smile": 0.8, "EyeSquintLeft": 0.3, "EyeSquintRight": 0.3,
        "BrowUpLeft": 0.2, "BrowUpRight": 0.2,
    },
    EmotionLabel.EXCITED: {
        "Smile": 1.0, "EyeWideLeft": 0.6, "EyeWideRight": 0.6,
        "BrowUpLeft": 0.6, "BrowUpRight": 0.6, "JawOpen": 0.3,
    },
    EmotionLabel.THOUGHTFUL: {
        "BrowDownLeft": 0.3, "EyeSquintLeft": 0.2, "EyeSquintRight": 0.2, "HeadTilt": 0.3,
    },
    EmotionLabel.ENCOURAGING: {
        "Smile": 0.6, "BrowUpLeft": 0.3, "BrowUpRight": 0.3, "HeadNod": 0.5,
    },
    EmotionLabel.CONFUSED: {
        "BrowDownLeft": 0.5, "BrowUpRight": 0.4, "HeadTilt": 0.6, "Frown": 0.2,
    },
    EmotionLabel.SAD: {
        "Frown": 0.7, "BrowUpLeft": 0.5, "BrowUpRight": 0.5,
        "EyeCloseLeft": 0.2, "EyeCloseRight": 0.2,
    },
    EmotionLabel.SURPRISED: {
        "EyeWideLeft": 0.9, "EyeWideRight": 0.9, "BrowUpLeft": 0.9, "BrowUpRight": 0.9,
        "JawOpen": 0.5, "MouthOpen": 0.5,
    },
    EmotionLabel.ANGRY: {
        "Frown": 0.6, "BrowDownLeft": 0.8, "BrowDownRight": 0.8,
        "EyeSquintLeft": 0.4, "EyeSquintRight": 0.4,
    },
}

IDLE_POSE: dict[str, float] = {**neutral_blendshapes(), "Smile": 0.15}


def _clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


def target_pose(label: EmotionLabel, intensity: float) -> dict[str, float]:
    pose = neutral_blendshapes()
    for key, weight in TARGET_POSES.get(label, {}).items():
        pose[key] = _clamp(weight * intensity)
    return pose


def _blend(current: dict[str, float], target: dict[str, float], alpha: float) -> dict[str, float]:
    return {
        k: round(_clamp(current.get(k, 0.0) + (target[k] - current.get(k, 0.0)) * alpha), 4)
        for k in target
    }


@dataclass(frozen=True)
class Transition:
    emotion: EmotionState
    animation: AnimationState
    cue: AnimationCue


@dataclass(frozen=True)
class IdleFrame:
    animation: AnimationState
    blendshapes: dict[str, float]  # pose to send this tick (includes the blink)
    blink: bool
    changed: bool


class AnimationStateMachine:
    """
    Pure transitions over (EmotionState, AnimationState). Inputs are never
    mutated; every call returns new records for the caller to persist.
    """

    def __init__(
        self,
        config: AnimationConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or settings.animation
        self.rng = rng or random.Random()

    # ── Turn transitions ──────────────────────────────────────────────────────

    def apply(
        self,
        emotion: EmotionState,
        animation: AnimationState,
        label: EmotionLabel,
        intensity: float,
        now: datetime,
        profile: CharacterProfile | None = None,
    ) -> Transition:
        intensity = _clamp(intensity)
        target = target_pose(label, intensity)
        if abs(intensity - emotion.intensity) > self.config.snap_threshold:
            blendshapes = {k: round(v, 4) for k, v in target.items()}
        else:
            alpha = _clamp(self.config.blend_rate * emotion.transition_speed)
            blendshapes = _blend(animation.blendshapes, target, alpha)

        entry = EmotionHistoryEntry(
            label=label, intensity=intensity, timestamp=now, context=emotion.label.value
        )
        history = [*emotion.history, entry][-self.config.emotion_history_limit :]
        new_emotion = emotion.model_copy(
            update={
                "label": label,
                "intensity": intensity,
                "last_transition": now,
                "last_decay": now,
                "history": history,
            }
        )

        expression = map_emotion_to_expression(label, profile.expressions if profile else None)
        gesture = self.pick_gesture(animation, label, now, profile)
        active = [expression] + ([gesture] if gesture else [])
        update: dict = {
            "blendshapes": blendshapes,
            "active_animations": active,
            "last_turn_at": now,
        }
        if gesture:
            update["last_gesture"] = gesture
            update["last_gesture_at"] = now
        new_animation = animation.model_copy(update=update)

        cue = AnimationCue(
            emotion=label,
            animation=expression,
            gesture=gesture,
            duration_ms=cue_duration_ms(intensity),
            intensity=intensity,
            blendshapes=blendshapes,
        )
        return Transition(emotion=new_emotion, animation=new_animation, cue=cue)

    def pick_gesture(
        self,
        animation: AnimationState,
        label: EmotionLabel,
        now: datetime,
        profile: CharacterProfile | None,
    ) -> str | None:
        """A gesture from the profile's set, or None. Never queued behind a playing one."""
        options = profile.gestures_for(label) if profile else ()
        if not options:
            return None
        if animation.last_gesture_at is not None:
            playing_ms = (now - animation.last_gesture_at).total_seconds() * 1000
            if playing_ms < self.config.gesture_duration_ms:
                return None
        if self.rng.random() >= animation.gesture_frequency:
            return None
        return self.rng.choice(list(options))

    # ── Background ────────────────────────────────────────────────────────────

    def decay(self, emotion: EmotionState, now: datetime) -> EmotionState:
        """Linear decay toward zero; the label falls back to neutral at zero."""
        if not emotion.auto_decay:
            return emotion
        since = emotion.last_decay or emotion.last_transition
        elapsed = max(0.0, (now - since).total_seconds())
        intensity = max(0.0, emotion.intensity - emotion.decay_rate * elapsed)
        label = EmotionLabel.NEUTRAL if intensity == 0.0 else emotion.label
        return emotion.model_copy(
            update={"intensity": round(intensity, 6), "label": label, "last_decay": now}
        )

    def idle_tick(self, animation: AnimationState, now: datetime) -> IdleFrame:
        if not animation.idle_animation_enabled:
            return IdleFrame(animation, dict(animation.blendshapes), blink=False, changed=False)

        blink = animation.last_blink_at is None or (
            (now - animation.last_blink_at).total_seconds() >= self.config.blink_interval_s
        )
        idle = animation.last_turn_at is None or (
            (now - animation.last_turn_at).total_seconds() >= self.config.idle_window_s
        )

        blendshapes = dict(animation.blendshapes)
        if idle:
            blendshapes = _blend(blendshapes, IDLE_POSE, self.config.idle_blend)
            # small head sway so the rig never looks frozen
            blendshapes["HeadTilt"] = round(_clamp(0.05 + self.rng.uniform(-0.05, 0.05)), 4)
            blendshapes["HeadNod"] = round(_clamp(0.03 + self.rng.uniform(-0.03, 0.03)), 4)

        update: dict = {"blendshapes": blendshapes}
        if blink:
            update["last_blink_at"] = now
        if idle:
            update["active_animations"] = ["idle"]
        new_animation = animation.model_copy(update=update)

        frame = dict(blendshapes)
        if blink:
            frame["Blink"] = 1.0
        return IdleFrame(new_animation, frame, blink=blink, changed=idle or blink)
