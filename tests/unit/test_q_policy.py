"""
Unit tests for the tabular SMDP Q-policy.

Tests:
- Masked epsilon-greedy selection
- Semi-Markov update with duration discounting and reward clamping
- Epsilon decay
- Table persistence and validation
"""

import json

import numpy as np
import pytest

from src.agents.pursuit import (
    OptionType,
    PolicyConfig,
    QUpdateResult,
    TabularQPolicy,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def zero_policy():
    """Seven-action policy with zero-initialized rows."""
    return TabularQPolicy(7, PolicyConfig(init_mode='zero', alpha=0.3, gamma=0.95), seed=0)


@pytest.fixture
def random_policy():
    """Seven-action policy with random initialization."""
    return TabularQPolicy(7, PolicyConfig(), seed=1)


# =============================================================================
# Initialization Tests
# =============================================================================

class TestInitialization:
    """Tests for construction and lazy row creation."""

    def test_invalid_action_count(self):
        """Zero actions is a configuration error."""
        with pytest.raises(ValueError):
            TabularQPolicy(0)

    def test_invalid_init_mode(self):
        """Unknown init modes are rejected by the config."""
        with pytest.raises(ValueError):
            PolicyConfig(init_mode='pessimistic')

    def test_random_rows_in_range(self, random_policy):
        """Random rows are uniform in [0, 0.1)."""
        values = random_policy.get_q_values(42)

        assert values.shape == (7,)
        assert np.all(values >= 0.0)
        assert np.all(values < 0.1)

    def test_optimistic_rows(self):
        """Optimistic rows are constant."""
        policy = TabularQPolicy(5, PolicyConfig(init_mode='optimistic'))
        np.testing.assert_allclose(policy.get_q_values(3), np.full(5, 0.08))

    def test_rows_created_once(self, random_policy):
        """Reading a state twice returns the same row."""
        first = random_policy.get_q_values(9)
        second = random_policy.get_q_values(9)

        np.testing.assert_array_equal(first, second)
        assert random_policy.states_visited == 1

    def test_returned_row_is_a_copy(self, zero_policy):
        """Mutating the returned row does not touch the table."""
        values = zero_policy.get_q_values(0)
        values[0] = 99.0
        assert zero_policy.get_q_value(0, 0) == 0.0


# =============================================================================
# Selection Tests
# =============================================================================

class TestChooseAction:
    """Tests for masked epsilon-greedy selection."""

    def test_unique_maximum_is_chosen(self, zero_policy):
        """With exploration off the unique maximum wins."""
        state = 243   # compact key with player visible
        zero_policy.set_q_values(state, [0.1, 0.2, 0.9, 0.3, 0.0, 0.4, 0.5])

        assert zero_policy.choose_action(state, explore=False) == 2

    def test_argmax_restricted_to_valid(self, zero_policy):
        """The argmax is taken over the valid actions only."""
        zero_policy.set_q_values(0, [0.0, 0.0, 5.0, 1.0, 9.0, 0.0, 0.0])

        action = zero_policy.choose_action(0, explore=False, valid_actions=[0, 2, 3])
        assert action == 2

    def test_accepts_enum_actions(self, zero_policy):
        """Valid actions may be given as OptionType members."""
        zero_policy.set_q_values(1, [0.0, 3.0, 0.0, 0.0, 0.0, 0.0, 7.0])
        valid = [OptionType.PATROL, OptionType.INVESTIGATE]

        assert zero_policy.choose_action(1, explore=False, valid_actions=valid) == 1

    def test_greedy_always_valid(self, random_policy):
        """Greedy choices are members of the valid set for many states."""
        rng = np.random.default_rng(3)
        for state in range(200):
            valid = sorted(rng.choice(7, size=int(rng.integers(1, 8)), replace=False).tolist())
            action = random_policy.choose_action(state, explore=False, valid_actions=valid)
            values = random_policy.get_q_values(state)

            assert action in valid
            assert values[action] == max(values[v] for v in valid)

    def test_exploration_stays_valid(self):
        """Full exploration still only picks valid actions."""
        policy = TabularQPolicy(7, PolicyConfig(epsilon=1.0), seed=4)
        for _ in range(100):
            assert policy.choose_action(0, explore=True, valid_actions=[3, 5]) in (3, 5)

    def test_ties_are_broken_among_maxima(self, zero_policy):
        """Ties are resolved among the tied actions only."""
        zero_policy.set_q_values(2, [1.0, 1.0, 0.0, 0.0, 0.0, 0.0, 1.0])
        for _ in range(50):
            assert zero_policy.choose_action(2, explore=False) in (0, 1, 6)


# =============================================================================
# Update Tests
# =============================================================================

class TestUpdateQ:
    """Tests for the semi-Markov update rule."""

    def test_zero_row_update(self, zero_policy):
        """reward=10, duration=0 on a zero row sets exactly alpha*10."""
        result = zero_policy.update_q(0, 2, 10.0, 1, 0.0)
        values = zero_policy.get_q_values(0)

        assert values[2] == pytest.approx(3.0)
        assert np.all(np.delete(values, 2) == 0.0)
        assert isinstance(result, QUpdateResult)
        assert result.new_value == pytest.approx(3.0)

    def test_duration_discount(self, zero_policy):
        """The bootstrap term is discounted by gamma ** duration."""
        zero_policy.set_q_values(1, [1.0] * 7)
        zero_policy.update_q(0, 0, 0.0, 1, 2.0)

        expected = 0.3 * (0.95 ** 2.0) * 1.0
        assert zero_policy.get_q_value(0, 0) == pytest.approx(expected)

    def test_reward_is_clamped(self, zero_policy):
        """Rewards outside [-10, 10] are clamped before the update."""
        result = zero_policy.update_q(0, 1, 500.0, 1, 0.0)

        assert result.reward == 10.0
        assert zero_policy.get_q_value(0, 1) == pytest.approx(3.0)

        result = zero_policy.update_q(5, 1, -500.0, 6, 0.0)
        assert result.reward == -10.0

    def test_td_error_and_delta_exposed(self, zero_policy):
        """The last TD error and table delta are observable."""
        zero_policy.update_q(0, 4, 2.0, 1, 0.0)

        assert zero_policy.last_td_error == pytest.approx(2.0)
        assert zero_policy.last_delta == pytest.approx(0.6)
        assert zero_policy.last_update.action == 4
        assert zero_policy.updates_performed == 1

    def test_enum_action(self, zero_policy):
        """Actions may be passed as enum members."""
        zero_policy.update_q(0, OptionType.AMBUSH, 1.0, 1, 0.0)
        assert zero_policy.get_q_value(0, OptionType.AMBUSH) == pytest.approx(0.3)

    def test_out_of_range_action_raises(self, zero_policy):
        """Action indices beyond the action space are rejected."""
        with pytest.raises(ValueError):
            zero_policy.update_q(0, 7, 1.0, 1, 0.0)

    def test_negative_duration_treated_as_zero(self, zero_policy):
        """Negative durations do not amplify the bootstrap term."""
        zero_policy.set_q_values(1, [1.0] * 7)
        result = zero_policy.update_q(0, 0, 0.0, 1, -3.0)

        assert result.duration == 0.0
        assert zero_policy.get_q_value(0, 0) == pytest.approx(0.3)


# =============================================================================
# Epsilon Tests
# =============================================================================

class TestEpsilonDecay:
    """Tests for exploration decay."""

    def test_non_increasing_with_floor(self):
        """Epsilon never increases and never drops below the floor."""
        policy = TabularQPolicy(7, PolicyConfig(epsilon=0.3, epsilon_decay=0.9, epsilon_min=0.05))
        previous = policy.epsilon
        for _ in range(200):
            current = policy.decay_epsilon()
            assert current <= previous
            assert current >= 0.05
            previous = current

        assert policy.epsilon == pytest.approx(0.05)
        assert policy.episodes_completed == 200

    def test_reset_table_restores_epsilon(self, zero_policy):
        """reset_table forgets values and restores the initial epsilon."""
        zero_policy.update_q(0, 0, 1.0, 1, 0.0)
        zero_policy.decay_epsilon()
        zero_policy.reset_table()

        assert zero_policy.q_table == {}
        assert zero_policy.epsilon == 0.3


# =============================================================================
# Persistence Tests
# =============================================================================

class TestPersistence:
    """Tests for table save/load."""

    def test_round_trip_three_states(self, random_policy):
        """Save then load of three states reproduces the table."""
        for state in (5, 1, 300):
            random_policy.get_q_values(state)
        blob = random_policy.save_table()

        restored = TabularQPolicy(7)
        assert restored.load_table(blob)

        assert set(restored.q_table) == set(random_policy.q_table)
        for state, values in random_policy.q_table.items():
            np.testing.assert_array_equal(restored.q_table[state], values)

    def test_blob_format(self, zero_policy):
        """Blobs hold parallel state and value lists."""
        zero_policy.set_q_values(3, [1, 2, 3, 4, 5, 6, 7])
        blob = zero_policy.save_table()

        assert blob['states'] == [3]
        assert blob['values'] == [[1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0]]
        assert blob['num_actions'] == 7
        json.dumps(blob)

    @pytest.mark.parametrize("blob", [
        None,
        [],
        {'states': [1]},
        {'states': [1, 2], 'values': [[0.0] * 7]},
        {'states': [1], 'values': [None]},
        {'states': [1], 'values': [[0.0] * 5]},
        {'states': [1], 'values': [[0.0] * 6 + [float('nan')]]},
        {'states': ['a'], 'values': [[0.0] * 7]},
        {'states': [1, 1], 'values': [[0.0] * 7, [0.0] * 7]},
    ])
    def test_invalid_blob_leaves_empty_table(self, random_policy, blob):
        """Invalid data leaves an empty table and does not raise."""
        random_policy.get_q_values(0)

        assert random_policy.load_table(blob) is False
        assert random_policy.q_table == {}

    def test_file_round_trip_with_keys(self, tmp_path):
        """Tables stored under different keys share one document."""
        path = str(tmp_path / 'tables' / 'qtables.json')
        fine = TabularQPolicy(7, seed=0)
        coarse = TabularQPolicy(5, seed=0)
        fine.get_q_values(10)
        coarse.get_q_values(20)

        fine.save(path, 'qtable_simple')
        coarse.save(path, 'qtable_coarse')

        with open(path) as f:
            document = json.load(f)
        assert set(document) == {'qtable_simple', 'qtable_coarse'}

        fine_restored = TabularQPolicy(7)
        coarse_restored = TabularQPolicy(5)
        assert fine_restored.load(path, 'qtable_simple')
        assert coarse_restored.load(path, 'qtable_coarse')
        np.testing.assert_array_equal(fine_restored.q_table[10], fine.q_table[10])
        np.testing.assert_array_equal(coarse_restored.q_table[20], coarse.q_table[20])

    def test_missing_key_gives_empty_table(self, tmp_path):
        """Loading a key that was never saved starts fresh."""
        path = str(tmp_path / 'qtables.json')
        TabularQPolicy(7).save(path, 'qtable')

        policy = TabularQPolicy(7)
        assert policy.load(path, 'qtable_simple') is False
        assert policy.q_table == {}

    def test_missing_file(self, tmp_path):
        """A missing file starts an empty table."""
        policy = TabularQPolicy(7)
        assert policy.load(str(tmp_path / 'nothing.json')) is False
        assert policy.q_table == {}

    def test_corrupt_file(self, tmp_path):
        """Unreadable JSON is logged and ignored."""
        path = tmp_path / 'broken.json'
        path.write_text('{not json')

        policy = TabularQPolicy(7)
        assert policy.load(str(path)) is False
        assert policy.q_table == {}
