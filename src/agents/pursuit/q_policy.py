"""
Tabular SMDP Q-learning policy.

Option-Based Pursuit Agent

Options run for a variable, measured duration, so the bootstrap term is
discounted by gamma ** duration instead of a fixed per-step gamma:

    Q(s,a) <- Q(s,a) + alpha * [r + gamma^duration * max_a' Q(s',a') - Q(s,a)]

Two independent instances are used by the agent: a 7-action policy over
the options and a 5-action policy for the coarse meta-controller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
import json
import logging
import math
import os

import numpy as np

from .config import PolicyConfig


logger = logging.getLogger(__name__)

ActionLike = Union[int, Enum]


def _as_index(action: ActionLike) -> int:
    return int(action.value) if isinstance(action, Enum) else int(action)


@dataclass
class QUpdateResult:
    """Diagnostics of a single Q update."""
    state: int
    action: int
    old_value: float
    new_value: float
    td_error: float
    delta: float
    reward: float          # after clamping
    duration: float

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            'state': self.state,
            'action': self.action,
            'old_value': self.old_value,
            'new_value': self.new_value,
            'td_error': self.td_error,
            'delta': self.delta,
            'reward': self.reward,
            'duration': self.duration,
        }


class TabularQPolicy:
    """
    Sparse Q-table with masked epsilon-greedy selection.

    Unknown states are lazily initialised (random, optimistic or zero)
    on first read. Rows always have exactly num_actions entries.
    """

    def __init__(
        self,
        num_actions: int,
        config: Optional[PolicyConfig] = None,
        seed: Optional[int] = None,
        name: str = 'policy'
    ):
        """
        Initialize the policy.

        Args:
            num_actions: Size of the action space (5 or 7)
            config: Learning hyperparameters
            seed: Random seed for exploration, tie-breaking and init
            name: Label used in log messages
        """
        if num_actions <= 0:
            raise ValueError(f"num_actions must be positive, got {num_actions}")

        self.num_actions = num_actions
        self.config = config or PolicyConfig()
        self.name = name
        self.rng = np.random.default_rng(seed)

        self.q_table: Dict[int, np.ndarray] = {}
        self.epsilon = self.config.epsilon

        # Counters
        self.states_visited = 0
        self.updates_performed = 0
        self.episodes_completed = 0

        # Diagnostics
        self.last_td_error = 0.0
        self.last_delta = 0.0
        self.last_update: Optional[QUpdateResult] = None

    # ------------------------------------------------------------------
    # Table access
    # ------------------------------------------------------------------

    def _initial_row(self) -> np.ndarray:
        mode = self.config.init_mode
        if mode == 'optimistic':
            return np.full(self.num_actions, self.config.optimistic_value, dtype=np.float64)
        if mode == 'zero':
            return np.zeros(self.num_actions, dtype=np.float64)
        return self.rng.uniform(self.config.init_low, self.config.init_high, self.num_actions)

    def _ensure_state(self, state: int) -> np.ndarray:
        row = self.q_table.get(state)
        if row is None:
            row = self._initial_row()
            self.q_table[state] = row
            self.states_visited += 1
        return row

    def get_q_values(self, state: int) -> np.ndarray:
        """Copy of the value row for a state (initialised if unseen)."""
        return self._ensure_state(int(state)).copy()

    def get_q_value(self, state: int, action: ActionLike) -> float:
        return float(self._ensure_state(int(state))[_as_index(action)])

    def set_q_values(self, state: int, values: Sequence[float]):
        """Overwrite a row; used for seeding and tests."""
        row = np.asarray(values, dtype=np.float64)
        if row.shape != (self.num_actions,):
            raise ValueError(f"Expected {self.num_actions} values, got {row.shape}")
        if int(state) not in self.q_table:
            self.states_visited += 1
        self.q_table[int(state)] = row.copy()

    def get_max_q(self, state: int) -> float:
        return float(np.max(self._ensure_state(int(state))))

    # ------------------------------------------------------------------
    # Selection and learning
    # ------------------------------------------------------------------

    def _valid_indices(self, valid_actions: Optional[Sequence[ActionLike]]) -> List[int]:
        if not valid_actions:
            return list(range(self.num_actions))
        indices = sorted({_as_index(a) for a in valid_actions
                          if 0 <= _as_index(a) < self.num_actions})
        return indices or list(range(self.num_actions))

    def choose_action(
        self,
        state: int,
        explore: bool = True,
        valid_actions: Optional[Sequence[ActionLike]] = None
    ) -> int:
        """
        Masked epsilon-greedy action selection.

        Args:
            state: State index
            explore: Whether epsilon exploration is allowed
            valid_actions: Allowed actions (None or empty means all)

        Returns:
            Selected action index, always a member of valid_actions
        """
        row = self._ensure_state(int(state))
        valid = self._valid_indices(valid_actions)

        if explore and self.rng.random() < self.epsilon:
            action = int(self.rng.choice(valid))
            logger.debug(f"[{self.name}] explore: action={action} eps={self.epsilon:.3f}")
            return action

        values = row[valid]
        best = values.max()
        best_actions = [a for a, v in zip(valid, values) if v == best]
        if len(best_actions) == 1:
            action = best_actions[0]
        else:
            action = int(self.rng.choice(best_actions))

        logger.debug(f"[{self.name}] exploit: action={action} Q={best:.3f}")
        return action

    def update_q(
        self,
        state: int,
        action: ActionLike,
        reward: float,
        next_state: int,
        duration: float
    ) -> QUpdateResult:
        """
        Semi-Markov Q update.

        Args:
            state: State index the option was chosen in
            action: Option that ran
            reward: Accumulated shaped reward (clamped before use)
            next_state: State index at option end
            duration: Seconds the option actually ran

        Returns:
            QUpdateResult with the TD error and the table delta
        """
        state = int(state)
        next_state = int(next_state)
        action = _as_index(action)
        if not 0 <= action < self.num_actions:
            raise ValueError(f"Action {action} out of range for {self.num_actions} actions")

        row = self._ensure_state(state)
        next_row = self._ensure_state(next_state)

        clamped = float(np.clip(reward, self.config.reward_clip_min, self.config.reward_clip_max))
        duration = max(0.0, float(duration))
        discount = self.config.gamma ** duration

        old_value = float(row[action])
        target = clamped + discount * float(np.max(next_row))
        td_error = target - old_value
        new_value = old_value + self.config.alpha * td_error
        row[action] = new_value

        self.updates_performed += 1
        self.last_td_error = td_error
        self.last_delta = new_value - old_value
        self.last_update = QUpdateResult(
            state=state,
            action=action,
            old_value=old_value,
            new_value=new_value,
            td_error=td_error,
            delta=self.last_delta,
            reward=clamped,
            duration=duration,
        )

        logger.debug(
            f"[{self.name}] Q({state},{action}) {old_value:.3f}->{new_value:.3f} "
            f"td={td_error:.3f} r={clamped:.3f} dur={duration:.2f}s"
        )
        return self.last_update

    def decay_epsilon(self) -> float:
        """Multiplicative decay toward the floor; call once per finished episode."""
        self.epsilon = max(self.config.epsilon_min, self.epsilon * self.config.epsilon_decay)
        self.episodes_completed += 1
        return self.epsilon

    def reset_table(self):
        """Forget everything learned and restore the initial epsilon."""
        self.q_table.clear()
        self.epsilon = self.config.epsilon
        self.states_visited = 0
        self.updates_performed = 0
        self.episodes_completed = 0
        self.last_td_error = 0.0
        self.last_delta = 0.0
        self.last_update = None

    def get_statistics(self) -> Dict[str, Any]:
        """Table and learning statistics."""
        if self.q_table:
            all_values = np.stack(list(self.q_table.values()))
            mean_q = float(all_values.mean())
            max_q = float(all_values.max())
        else:
            mean_q = 0.0
            max_q = 0.0

        return {
            'table_size': len(self.q_table),
            'states_visited': self.states_visited,
            'updates_performed': self.updates_performed,
            'episodes_completed': self.episodes_completed,
            'epsilon': self.epsilon,
            'mean_q': mean_q,
            'max_q': max_q,
            'last_td_error': self.last_td_error,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_table(self) -> Dict[str, Any]:
        """Serialize the table as parallel state / value lists."""
        states = sorted(self.q_table.keys())
        return {
            'states': states,
            'values': [self.q_table[s].tolist() for s in states],
            'num_actions': self.num_actions,
        }

    def load_table(self, data: Optional[Dict[str, Any]]) -> bool:
        """
        Restore the table from save_table() output.

        Structurally invalid data leaves an empty table and logs a warning;
        it never raises.

        Returns:
            True if the table was loaded
        """
        problem = self._validate_blob(data)
        if problem is not None:
            logger.warning(f"[{self.name}] Discarding Q-table: {problem}")
            self.q_table.clear()
            self.states_visited = 0
            return False

        self.q_table = {
            int(s): np.asarray(v, dtype=np.float64)
            for s, v in zip(data['states'], data['values'])
        }
        self.states_visited = len(self.q_table)
        logger.info(f"[{self.name}] Loaded Q-table with {len(self.q_table)} states")
        return True

    def _validate_blob(self, data: Any) -> Optional[str]:
        if data is None:
            return "no data"
        if not isinstance(data, dict):
            return f"expected a mapping, got {type(data).__name__}"

        states = data.get('states')
        values = data.get('values')
        if not isinstance(states, list) or not isinstance(values, list):
            return "missing 'states' or 'values' list"
        if len(states) != len(values):
            return f"state/value count mismatch ({len(states)} vs {len(values)})"

        for state, row in zip(states, values):
            if isinstance(state, bool) or not isinstance(state, int):
                return f"non-integer state key {state!r}"
            if row is None:
                return f"null value row for state {state}"
            if not isinstance(row, list) or len(row) != self.num_actions:
                return f"row for state {state} does not have {self.num_actions} values"
            for value in row:
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    return f"non-numeric value in row for state {state}"
                if not math.isfinite(value):
                    return f"non-finite value in row for state {state}"
        if len(set(states)) != len(states):
            return "duplicate state keys"
        return None

    def save(self, path: str, key: str = 'qtable'):
        """
        Store the table under a named key in a JSON document.

        Other keys already present in the document are preserved.
        """
        document: Dict[str, Any] = {}
        if os.path.exists(path):
            try:
                with open(path, 'r') as f:
                    existing = json.load(f)
                if isinstance(existing, dict):
                    document = existing
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"[{self.name}] Overwriting unreadable table file {path}: {e}")

        save_dir = os.path.dirname(path)
        if save_dir:
            os.makedirs(save_dir, exist_ok=True)

        document[key] = self.save_table()
        with open(path, 'w') as f:
            json.dump(document, f, indent=2)

        logger.info(f"[{self.name}] Saved {len(self.q_table)} states to {path} [{key}]")

    def load(self, path: str, key: str = 'qtable') -> bool:
        """
        Load the table stored under a named key.

        Missing files, unreadable JSON and invalid blobs all leave an empty
        table.
        """
        if not os.path.exists(path):
            logger.info(f"[{self.name}] No table file at {path}, starting fresh")
            self.q_table.clear()
            self.states_visited = 0
            return False

        try:
            with open(path, 'r') as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[{self.name}] Failed to read table file {path}: {e}")
            self.q_table.clear()
            self.states_visited = 0
            return False

        blob = document.get(key) if isinstance(document, dict) else None
        return self.load_table(blob)
