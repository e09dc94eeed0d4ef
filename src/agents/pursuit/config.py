"""
Configuration for the pursuit decision core.

Option-Based Pursuit Agent

All tunable thresholds, learning hyperparameters, reward weights and
per-option settings live here as dataclasses so that a whole agent can be
described by a single YAML document.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any
from pathlib import Path
import logging
import warnings

import yaml


logger = logging.getLogger(__name__)


@dataclass
class CompactStateConfig:
    """Thresholds for the 486-state compact compressor."""
    dist_close: float = 8.0        # metres
    dist_far: float = 16.0         # metres
    time_recent: float = 2.0       # seconds since contact
    time_old: float = 6.0          # seconds since contact
    same_area_radius: float = 5.0  # last contact counts as "same area"
    contact_unknown_after: float = 7.0
    heard_target_window: float = 10.0

    # Heat buckets (choke score / node heat, raw units)
    heat_warm: float = 5.0
    heat_hot: float = 20.0


@dataclass
class ExactStateConfig:
    """Thresholds for the twelve-field exact compressor."""
    time_bins: List[float] = field(default_factory=lambda: [2.0, 6.0, 15.0])
    dist_close: float = 10.0
    dist_medium: float = 20.0

    # Heat confidence is peak / cap, so these are fractions
    heat_low: float = 0.3
    heat_high: float = 0.7

    hide_spot_radius: float = 5.0
    total_search_time: float = 60.0
    progress_thresholds: List[float] = field(default_factory=lambda: [0.33, 0.66])

    # Hysteresis on the "recently heard" / "recently found clue" flags
    enable_hysteresis: bool = True
    recent_threshold: float = 20.0
    hysteresis_buffer: float = 2.0


@dataclass
class CoarseStateConfig:
    """Buckets for the meta-controller state."""
    time_buckets: List[float] = field(default_factory=lambda: [5.0, 15.0, 30.0])
    num_player_styles: int = 4


@dataclass
class MaskConfig:
    """Action masking switches."""
    enable_masking: bool = True
    patrol_always_valid: bool = True


@dataclass
class PolicyConfig:
    """Tabular SMDP Q-learning hyperparameters."""
    alpha: float = 0.3
    gamma: float = 0.95
    epsilon: float = 0.3
    epsilon_decay: float = 0.995
    epsilon_min: float = 0.05

    # Rewards are clamped to this range before the update
    reward_clip_min: float = -10.0
    reward_clip_max: float = 10.0

    # 'random', 'optimistic' or 'zero'
    init_mode: str = 'random'
    init_low: float = 0.0
    init_high: float = 0.1
    optimistic_value: float = 0.08

    def __post_init__(self):
        if self.init_mode not in ('random', 'optimistic', 'zero'):
            raise ValueError(f"Unknown init_mode: {self.init_mode}")
        if not 0.0 <= self.epsilon_min <= 1.0:
            raise ValueError(f"epsilon_min must be in [0, 1], got {self.epsilon_min}")
        if self.reward_clip_min > self.reward_clip_max:
            raise ValueError("reward_clip_min must not exceed reward_clip_max")


@dataclass
class RewardConfig:
    """Weights for the shaped option reward."""
    see_player_reward: float = 1.0
    distance_reduction_reward: float = 0.2   # per metre closer to the belief target
    hot_room_reward: float = 0.2
    hot_room_threshold: float = 0.5          # node heat / cap
    new_room_reward: float = 0.15
    patrol_complete_reward: float = 0.25
    spot_cleared_reward: float = 0.4

    # Repetition: -penalty * (count - grace) once count > grace,
    # multiplied once count > escalation_threshold
    repetition_penalty: float = 0.1
    repetition_grace: int = 2
    repetition_escalation_threshold: int = 5
    repetition_escalation: float = 2.5

    timeout_penalty: float = 0.5
    time_penalty_per_second: float = 0.005
    min_time_cost: float = 0.01
    no_info_penalty: float = 0.15


@dataclass
class OptionConfig:
    """Per-behavior settings."""
    # Shared commitment window; max durations default to OPTION_LIMITS
    default_min_commit_time: float = 2.0

    # Patrol
    patrol_max_duration: float = 45.0
    patrol_waypoints: int = 3
    patrol_scan_duration: float = 2.0

    # Investigate
    investigate_scan_duration: float = 2.0
    investigate_catch_distance: float = 2.0

    # Sweep
    sweep_max_duration: float = 25.0
    sweep_max_hide_spots: int = 3
    sweep_scan_duration: float = 1.0
    sweep_arrival_distance: float = 2.0
    sweep_check_corners: bool = False
    sweep_corner_inset: float = 0.4
    sweep_use_selector: bool = True

    # Hide-spot check
    hide_spot_count: int = 3
    hide_spot_check_duration: float = 1.5
    hide_spot_arrival_distance: float = 2.0
    hide_spot_train_scorer: bool = False

    # Heat sweep
    heat_sweep_chain_length: int = 3
    heat_sweep_dwell: float = 3.0
    heat_sweep_arrival_distance: float = 3.0
    heat_sweep_timeout: float = 30.0

    # Ambush at choke point
    ambush_top_chokes: int = 3
    ambush_wait_min: float = 2.0
    ambush_wait_max: float = 4.0
    ambush_distance_weight: float = 0.3
    ambush_heat_weight: float = 0.7
    ambush_distance_scale: float = 10.0
    ambush_arrival_distance: float = 2.0
    ambush_timeout: float = 30.0

    # Heat search
    heat_search_scan_duration: float = 2.0
    heat_search_min_heat: float = 0.1
    heat_search_shift_threshold: float = 1.5


@dataclass
class TargetSelectionConfig:
    """Scoring of candidate rooms and hide spots."""
    explore: bool = True
    epsilon: float = 0.1
    max_distance: float = 30.0
    max_time_since_checked: float = 300.0
    max_hide_spot_density: float = 10.0   # spots per 100 square metres
    learning_rate: float = 0.1
    learning_rate_decay: float = 0.999
    use_sigmoid: bool = True


@dataclass
class ChaseConfig:
    """Hard-pursuit routine settings."""
    replan_interval: float = 0.3
    lost_target_timeout: float = 3.0
    capture_radius: float = 1.5
    require_line_of_sight: bool = False
    continue_to_last_seen: bool = True


@dataclass
class MetaControllerConfig:
    """Coarse patrol/search/chase controller."""
    enabled: bool = False
    state: CoarseStateConfig = field(default_factory=CoarseStateConfig)
    policy: PolicyConfig = field(default_factory=lambda: PolicyConfig(init_mode='optimistic'))


@dataclass
class EpisodeConfig:
    """Episode accounting used by the episode manager."""
    episode_timeout: float = 30.0
    capture_distance: float = 1.5
    capture_reward: float = 10.0
    escape_reward: float = -5.0
    max_episodes: int = 1000


@dataclass
class PursuitConfig:
    """
    Master configuration for a pursuit agent.

    Combines all sub-configurations for easy management.
    """
    compact_state: CompactStateConfig = field(default_factory=CompactStateConfig)
    exact_state: ExactStateConfig = field(default_factory=ExactStateConfig)
    mask: MaskConfig = field(default_factory=MaskConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    reward: RewardConfig = field(default_factory=RewardConfig)
    options: OptionConfig = field(default_factory=OptionConfig)
    targets: TargetSelectionConfig = field(default_factory=TargetSelectionConfig)
    chase: ChaseConfig = field(default_factory=ChaseConfig)
    meta: MetaControllerConfig = field(default_factory=MetaControllerConfig)
    episode: EpisodeConfig = field(default_factory=EpisodeConfig)

    # Decision loop switches
    use_compact_state: bool = True
    enable_learning: bool = True
    explore: bool = True
    enable_hard_pursuit: bool = True

    # Paths
    qtable_path: str = 'checkpoints/pursuit/qtables.json'

    seed: Optional[int] = None

    @property
    def qtable_key(self) -> str:
        """Key the fine policy's table is stored under."""
        return 'qtable_simple' if self.use_compact_state else 'qtable'

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PursuitConfig':
        """Create configuration from dictionary."""
        config_dict = dict(config_dict or {})
        meta_dict = dict(config_dict.get('meta') or {})

        meta = MetaControllerConfig(
            enabled=meta_dict.get('enabled', False),
            state=_build(CoarseStateConfig, meta_dict.get('state')),
            policy=_build(PolicyConfig, meta_dict.get('policy'), init_mode='optimistic'),
        )

        top_level = {
            key: value for key, value in config_dict.items()
            if key not in _SECTIONS and key != 'meta'
        }
        return _build(
            cls,
            top_level,
            compact_state=_build(CompactStateConfig, config_dict.get('compact_state')),
            exact_state=_build(ExactStateConfig, config_dict.get('exact_state')),
            mask=_build(MaskConfig, config_dict.get('mask')),
            policy=_build(PolicyConfig, config_dict.get('policy')),
            reward=_build(RewardConfig, config_dict.get('reward')),
            options=_build(OptionConfig, config_dict.get('options')),
            targets=_build(TargetSelectionConfig, config_dict.get('targets')),
            chase=_build(ChaseConfig, config_dict.get('chase')),
            meta=meta,
            episode=_build(EpisodeConfig, config_dict.get('episode')),
        )


_SECTIONS = (
    'compact_state', 'exact_state', 'mask', 'policy', 'reward',
    'options', 'targets', 'chase', 'episode',
)


def _build(cls, values: Optional[Dict[str, Any]], **defaults):
    """Instantiate a config dataclass, ignoring (and warning about) unknown keys."""
    values = dict(values or {})
    known = {}
    for key, value in values.items():
        if key in cls.__dataclass_fields__:
            known[key] = value
        else:
            warnings.warn(f"Ignoring unknown {cls.__name__} field: {key}")
    for key, value in defaults.items():
        known.setdefault(key, value)
    return cls(**known)


def create_default_config() -> PursuitConfig:
    """Create default pursuit configuration."""
    return PursuitConfig()


def create_fast_config() -> PursuitConfig:
    """Create configuration for fast testing/debugging."""
    return PursuitConfig(
        policy=PolicyConfig(alpha=0.5, epsilon=0.5, epsilon_decay=0.9),
        options=OptionConfig(
            patrol_max_duration=20.0,
            patrol_scan_duration=0.5,
            sweep_scan_duration=0.5,
            investigate_scan_duration=0.5,
            hide_spot_check_duration=0.5,
        ),
        episode=EpisodeConfig(episode_timeout=15.0, max_episodes=20),
        seed=0,
    )


def load_config(path: str) -> PursuitConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to YAML document

    Returns:
        PursuitConfig; defaults when the file is missing or unreadable
    """
    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using defaults")
        return create_default_config()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        return create_default_config()

    if not isinstance(data, dict):
        logger.warning(f"Config file {config_path} is empty or not a mapping, using defaults")
        return create_default_config()

    return PursuitConfig.from_dict(data)


def save_config(config: PursuitConfig, path: str):
    """Write configuration to a YAML file."""
    config_path = Path(path)
    if config_path.parent and not config_path.parent.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
    logger.info(f"Saved pursuit config to {config_path}")
