"""
Option-Based Pursuit Agent.

This module implements the decision core of an autonomous pursuer that
hunts a target under partial observability. A tabular SMDP Q-learner
chooses among temporally-extended behaviors (options); each option runs
as a resumable state machine until it finishes or is preempted by
higher-priority evidence:

- State Compressor: observation -> compact (486) or exact (20-bit) key
- Action Mask: drops options that make no sense in a state
- Tabular Policy: masked epsilon-greedy, Q += a(r + g^dt max Q' - Q)
- Options: Patrol, Investigate, HeatSearch, Sweep, HideSpotCheck,
  HeatSweep, Ambush
- Reward Shaper: shaped reward with a per-term breakdown
- Orchestrator: decision loop, interrupts and hard-pursuit override

Architecture:
    +---------------------------+
    |  DECISION ORCHESTRATOR    |  Decides at option boundaries
    |  - option-driven mode     |  Ticked once per frame
    |  - hard-pursuit mode      |
    +-------------+-------------+
                  |
     state key -> mask -> Q-policy (-> meta-controller hint)
                  |
    +-------------v-------------+
    |     ACTIVE OPTION         |  initialize / step / stop
    |  - phase + timestamps     |  timeout, min-commit, interrupts
    +-------------+-------------+
                  |
       finished or interrupted
                  |
    +-------------v-------------+
    |  REWARD SHAPER + UPDATE   |  SMDP update with real duration
    +---------------------------+

Usage:
    from src.agents.pursuit import (
        DecisionOrchestrator,
        EpisodeManager,
        create_default_config,
    )
    from src.environments.room_arena import RoomArena

    config = create_default_config()
    manager = EpisodeManager(RoomArena(seed=0), config, seed=0)

    # Train for a few episodes
    for _ in range(10):
        stats = manager.run_episode()

    manager.orchestrator.save_tables('checkpoints/pursuit/qtables.json')
"""

# Configuration
from .config import (
    CompactStateConfig,
    ExactStateConfig,
    CoarseStateConfig,
    MaskConfig,
    PolicyConfig,
    RewardConfig,
    OptionConfig,
    TargetSelectionConfig,
    ChaseConfig,
    MetaControllerConfig,
    EpisodeConfig,
    PursuitConfig,
    create_default_config,
    create_fast_config,
    load_config,
    save_config,
)

# Option, status and interrupt types
from .option_types import (
    OptionType,
    OptionStatus,
    InterruptKind,
    BehaviorMode,
    CoarseAction,
    OptionLimits,
    OPTION_LIMITS,
    get_option_limits,
)

# Collaborators and context
from .context import (
    Vec2,
    Room,
    HideSpot,
    Mover,
    Sensing,
    HeatGraph,
    Registry,
    AgentContext,
    distance,
)

# State
from .state_keys import (
    CompactStateKey,
    ExactStateKey,
    CoarseStateKey,
    EXACT_FIELD_BITS,
    EXACT_TOTAL_BITS,
)

from .state_compressor import (
    HysteresisFlag,
    CompactStateCompressor,
    ExactStateCompressor,
    CoarseStateCompressor,
    bucketize,
)

# Masking, learning and rewards
from .action_mask import ActionMasker

from .q_policy import (
    QUpdateResult,
    TabularQPolicy,
)

from .reward_shaper import (
    RewardBreakdown,
    RewardShaper,
    create_reward_shaper,
)

# Target selection
from .target_selection import (
    TargetFeatures,
    LinearTargetScorer,
    RoomTarget,
    HideSpotTarget,
    TargetSelector,
)

# Options
from .base_option import (
    OptionPhase,
    BaseOption,
)

from .options import (
    PatrolOption,
    InvestigateOption,
    HeatSearchOption,
    SweepOption,
    HideSpotCheckOption,
    HeatSweepOption,
    AmbushOption,
    OPTION_CLASSES,
    create_option_pool,
)

# Pursuit, meta-control and orchestration
from .chase import (
    ChaseStatus,
    ChaseRoutine,
)

from .meta_controller import MetaController

from .orchestrator import (
    OrchestratorMode,
    DecisionRecord,
    OrchestratorStats,
    DecisionOrchestrator,
    create_orchestrator,
)

# Episodes
from .episode import (
    EpisodeOutcome,
    EpisodeStats,
    EpisodeManager,
)


__all__ = [
    # Configuration
    'CompactStateConfig',
    'ExactStateConfig',
    'CoarseStateConfig',
    'MaskConfig',
    'PolicyConfig',
    'RewardConfig',
    'OptionConfig',
    'TargetSelectionConfig',
    'ChaseConfig',
    'MetaControllerConfig',
    'EpisodeConfig',
    'PursuitConfig',
    'create_default_config',
    'create_fast_config',
    'load_config',
    'save_config',

    # Types
    'OptionType',
    'OptionStatus',
    'InterruptKind',
    'BehaviorMode',
    'CoarseAction',
    'OptionLimits',
    'OPTION_LIMITS',
    'get_option_limits',

    # Context
    'Vec2',
    'Room',
    'HideSpot',
    'Mover',
    'Sensing',
    'HeatGraph',
    'Registry',
    'AgentContext',
    'distance',

    # State
    'CompactStateKey',
    'ExactStateKey',
    'CoarseStateKey',
    'EXACT_FIELD_BITS',
    'EXACT_TOTAL_BITS',
    'HysteresisFlag',
    'CompactStateCompressor',
    'ExactStateCompressor',
    'CoarseStateCompressor',
    'bucketize',

    # Masking, learning and rewards
    'ActionMasker',
    'QUpdateResult',
    'TabularQPolicy',
    'RewardBreakdown',
    'RewardShaper',
    'create_reward_shaper',

    # Target selection
    'TargetFeatures',
    'LinearTargetScorer',
    'RoomTarget',
    'HideSpotTarget',
    'TargetSelector',

    # Options
    'OptionPhase',
    'BaseOption',
    'PatrolOption',
    'InvestigateOption',
    'HeatSearchOption',
    'SweepOption',
    'HideSpotCheckOption',
    'HeatSweepOption',
    'AmbushOption',
    'OPTION_CLASSES',
    'create_option_pool',

    # Pursuit and orchestration
    'ChaseStatus',
    'ChaseRoutine',
    'MetaController',
    'OrchestratorMode',
    'DecisionRecord',
    'OrchestratorStats',
    'DecisionOrchestrator',
    'create_orchestrator',

    # Episodes
    'EpisodeOutcome',
    'EpisodeStats',
    'EpisodeManager',
]
