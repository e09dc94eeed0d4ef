"""
Target selection for patrol rooms and hide spots.

Option-Based Pursuit Agent

Candidates are described by six normalized features and ranked by a small
online perceptron, so the options can learn which rooms and hide spots
tend to pay off.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import logging

import numpy as np

from .config import TargetSelectionConfig
from .context import AgentContext, HideSpot, Room, Vec2, distance


logger = logging.getLogger(__name__)


@dataclass
class TargetFeatures:
    """Normalized [0, 1] features of a candidate target."""
    heat_at_target: float = 0.0
    closeness: float = 0.0                 # 1 = here, 0 = max_distance or further
    staleness: float = 0.0                 # 1 = not checked for a long time
    hide_spot_density: float = 0.0
    proximity_to_last_heard: float = 0.0
    objective_likelihood: float = 0.0

    FEATURE_COUNT = 6

    def to_array(self) -> np.ndarray:
        return np.array([
            self.heat_at_target,
            self.closeness,
            self.staleness,
            self.hide_spot_density,
            self.proximity_to_last_heard,
            self.objective_likelihood,
        ], dtype=np.float64)

    def __str__(self) -> str:
        return (f"[Heat:{self.heat_at_target:.2f} Close:{self.closeness:.2f} "
                f"Stale:{self.staleness:.2f} Dens:{self.hide_spot_density:.2f} "
                f"Heard:{self.proximity_to_last_heard:.2f} Obj:{self.objective_likelihood:.2f}]")


class LinearTargetScorer:
    """
    Single-layer perceptron: score = sigmoid(w . x + b).

    With use_sigmoid disabled the linear activation is clamped to [0, 1].
    """

    def __init__(
        self,
        num_features: int = TargetFeatures.FEATURE_COUNT,
        learning_rate: float = 0.1,
        learning_rate_decay: float = 0.999,
        use_sigmoid: bool = True,
        randomize: bool = False,
        rng: Optional[np.random.Generator] = None
    ):
        self.num_features = num_features
        self.learning_rate = learning_rate
        self.learning_rate_decay = learning_rate_decay
        self.use_sigmoid = use_sigmoid
        self.rng = rng or np.random.default_rng()

        self.weights = np.full(num_features, 1.0 / num_features)
        self.bias = 0.0
        self.current_learning_rate = learning_rate
        self.update_count = 0

        if randomize:
            self.randomize_weights()

    def randomize_weights(self):
        self.weights = self.rng.uniform(-0.5, 0.5, self.num_features)
        self.bias = float(self.rng.uniform(-0.5, 0.5))

    def score(self, features: np.ndarray) -> float:
        features = np.asarray(features, dtype=np.float64)
        if features.shape != (self.num_features,):
            logger.warning(f"Feature count mismatch: expected {self.num_features}, got {features.shape}")
            return 0.0

        activation = float(self.weights @ features + self.bias)
        if self.use_sigmoid:
            return float(1.0 / (1.0 + np.exp(-activation)))
        return float(np.clip(activation, 0.0, 1.0))

    def update(self, features: np.ndarray, target: float) -> float:
        """
        One online gradient step toward target.

        Returns:
            Error before the update
        """
        features = np.asarray(features, dtype=np.float64)
        error = target - self.score(features)
        self.weights += self.current_learning_rate * error * features
        self.bias += self.current_learning_rate * error
        self.current_learning_rate *= self.learning_rate_decay
        self.update_count += 1
        return error

    def reset_learning(self):
        self.current_learning_rate = self.learning_rate
        self.update_count = 0

    def get_weight_summary(self) -> Dict[str, float]:
        summary = {f'w{i}': float(w) for i, w in enumerate(self.weights)}
        summary['bias'] = self.bias
        summary['learning_rate'] = self.current_learning_rate
        summary['updates'] = self.update_count
        return summary


@dataclass
class RoomTarget:
    """Scored candidate room."""
    room: Room
    features: TargetFeatures = field(default_factory=TargetFeatures)
    score: float = 0.0

    @property
    def room_id(self) -> str:
        return self.room.room_id

    @property
    def position(self) -> Vec2:
        return self.room.center


@dataclass
class HideSpotTarget:
    """Scored candidate hide spot."""
    spot: HideSpot
    features: TargetFeatures = field(default_factory=TargetFeatures)
    score: float = 0.0

    @property
    def position(self) -> Vec2:
        return self.spot.position


class TargetSelector:
    """
    Ranks patrol rooms and hide spots with two perceptrons.

    Empty registries yield empty results; selection never raises.
    """

    def __init__(
        self,
        config: Optional[TargetSelectionConfig] = None,
        rng: Optional[np.random.Generator] = None
    ):
        self.config = config or TargetSelectionConfig()
        self.rng = rng or np.random.default_rng()

        scorer_kwargs = dict(
            learning_rate=self.config.learning_rate,
            learning_rate_decay=self.config.learning_rate_decay,
            use_sigmoid=self.config.use_sigmoid,
            rng=self.rng,
        )
        self.room_scorer = LinearTargetScorer(**scorer_kwargs)
        self.hide_spot_scorer = LinearTargetScorer(**scorer_kwargs)

        self.last_scores_log = ""

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def _heat01(self, ctx: AgentContext, room_id: Optional[str]) -> float:
        if ctx.heat is None or room_id is None:
            return 0.0
        cap = max(ctx.heat.max_heat_cap, 1e-6)
        return float(np.clip(ctx.heat.get_node_heat(room_id) / cap, 0.0, 1.0))

    def _closeness(self, a: Vec2, b: Vec2) -> float:
        return 1.0 - float(np.clip(distance(a, b) / self.config.max_distance, 0.0, 1.0))

    def _proximity_to_heard(self, ctx: AgentContext, point: Vec2) -> float:
        if ctx.sensing is None or not ctx.has_heard_recently():
            return 0.0
        heard = ctx.sensing.last_heard_position
        if heard is None:
            return 0.0
        return self._closeness(point, heard)

    def extract_room_features(self, room: Room, ctx: AgentContext) -> TargetFeatures:
        heat = self._heat01(ctx, room.room_id)
        spots = ctx.hide_spots_in_room(room.room_id)
        density = len(spots) / max(room.area, 1.0) * 100.0

        return TargetFeatures(
            heat_at_target=heat,
            closeness=self._closeness(ctx.position, room.center),
            # Cold rooms have not been walked through lately
            staleness=1.0 - heat,
            hide_spot_density=float(np.clip(density / self.config.max_hide_spot_density, 0.0, 1.0)),
            proximity_to_last_heard=self._proximity_to_heard(ctx, room.center),
            objective_likelihood=0.5,
        )

    def extract_hide_spot_features(self, spot: HideSpot, ctx: AgentContext) -> TargetFeatures:
        since_check = spot.time_since_last_check(ctx.time)
        return TargetFeatures(
            heat_at_target=self._heat01(ctx, ctx.room_at(spot.position) or spot.room_id),
            closeness=self._closeness(ctx.position, spot.position),
            staleness=float(np.clip(since_check / self.config.max_time_since_checked, 0.0, 1.0)),
            hide_spot_density=0.0,
            proximity_to_last_heard=self._proximity_to_heard(ctx, spot.position),
            objective_likelihood=float(np.clip(spot.probability, 0.0, 1.0)),
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _room_candidates(self, ctx: AgentContext, exclude: List[str]) -> List[RoomTarget]:
        candidates = []
        for room in ctx.all_rooms():
            if room.is_junction or room.room_id in exclude:
                continue
            features = self.extract_room_features(room, ctx)
            candidates.append(RoomTarget(room, features, self.room_scorer.score(features.to_array())))
        candidates.sort(key=lambda t: t.score, reverse=True)
        return candidates

    def _explore(self) -> bool:
        return self.config.explore and self.rng.random() < self.config.epsilon

    def select_patrol_room(
        self,
        ctx: AgentContext,
        exclude_rooms: Optional[List[str]] = None
    ) -> Optional[RoomTarget]:
        """
        Best-scoring non-junction room.

        Args:
            ctx: Agent context
            exclude_rooms: Room ids not to consider

        Returns:
            RoomTarget or None when no candidate exists
        """
        candidates = self._room_candidates(ctx, list(exclude_rooms or []))
        if not candidates:
            logger.debug("No rooms available for patrol selection")
            return None

        best = candidates[0]
        if len(candidates) > 1 and self._explore():
            best = candidates[int(self.rng.integers(len(candidates)))]
            logger.debug(f"Exploring: picked random room {best.room_id}")

        self._log_scores(candidates)
        return best

    def select_patrol_route(self, ctx: AgentContext, route_length: int = 3) -> List[RoomTarget]:
        """Top-scoring rooms, skipping junctions and the current room."""
        current = ctx.current_room()
        exclude = [current] if current is not None else []
        candidates = self._room_candidates(ctx, exclude)
        self._log_scores(candidates)
        return candidates[:max(0, route_length)]

    def select_hide_spots(
        self,
        ctx: AgentContext,
        room_id: Optional[str],
        top_k: int = 3
    ) -> List[HideSpotTarget]:
        """Top-K hide spots of a room; the order is shuffled when exploring."""
        candidates = []
        for spot in ctx.hide_spots_in_room(room_id):
            features = self.extract_hide_spot_features(spot, ctx)
            candidates.append(HideSpotTarget(spot, features,
                                             self.hide_spot_scorer.score(features.to_array())))
        if not candidates:
            return []

        candidates.sort(key=lambda t: t.score, reverse=True)
        top = candidates[:max(0, top_k)]
        if len(top) > 1 and self._explore():
            order = self.rng.permutation(len(top))
            top = [top[i] for i in order]
        return top

    def _log_scores(self, candidates: List[RoomTarget]):
        shown = ", ".join(f"{c.room_id}({c.score:.2f})" for c in candidates[:5])
        self.last_scores_log = f"Scores: {shown}"

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train_room_scorer(self, target: RoomTarget, score: float) -> float:
        return self.room_scorer.update(target.features.to_array(), score)

    def train_hide_spot_scorer(self, target: HideSpotTarget, score: float) -> float:
        return self.hide_spot_scorer.update(target.features.to_array(), score)
