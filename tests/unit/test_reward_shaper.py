"""
Unit tests for reward shaping.

Tests:
- Breakdown consistency
- Individual shaping terms
- Repetition escalation
- Per-episode reset
"""

import itertools

import pytest

from src.agents.pursuit import (
    AgentContext,
    OptionStatus,
    OptionType,
    RewardBreakdown,
    RewardConfig,
    RewardShaper,
    create_reward_shaper,
)
from src.agents.pursuit.reward_shaper import (
    DISTANCE_IMPROVEMENT,
    FAILURE_TIMEOUT,
    HOT_ROOM,
    NEW_ROOM,
    NO_INFO,
    PATROL_COMPLETE,
    REPETITION,
    SEE_PLAYER,
    SPOT_CLEARED,
    TIME_COST,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def shaper():
    """Reward shaper with default weights."""
    return create_reward_shaper()


# =============================================================================
# Breakdown Tests
# =============================================================================

class TestRewardBreakdown:
    """Tests for the breakdown container."""

    def test_total_and_get(self):
        """total sums every item, get sums one label."""
        breakdown = RewardBreakdown()
        breakdown.add("A", 1.0)
        breakdown.add("B", -0.25)
        breakdown.add("A", 0.5)

        assert breakdown.total == pytest.approx(1.25)
        assert breakdown.get("A") == pytest.approx(1.5)
        assert breakdown.get("missing") == 0.0
        assert "B" in breakdown

    def test_to_dict_and_format(self):
        """Dictionary form includes the total; format lists every term."""
        breakdown = RewardBreakdown()
        breakdown.add("Time Cost", -0.05)

        assert breakdown.to_dict() == {"Time Cost": -0.05, "total": -0.05}
        assert "Time Cost: -0.05" in breakdown.format()
        assert RewardBreakdown().format() == "| (no terms) |"


class TestBreakdownSumsToTotal:
    """The returned scalar always equals the sum of the breakdown."""

    def test_arbitrary_term_combinations(self, ctx, sensing, heat, mover):
        """Many combinations of status, action, contact and heat."""
        statuses = list(OptionStatus)
        actions = [OptionType.PATROL, OptionType.HIDE_SPOT_CHECK, OptionType.SWEEP]
        for status, action, visible, hot, duration in itertools.product(
                statuses, actions, (False, True), (False, True), (0.5, 12.0)):
            shaper = RewardShaper()
            sensing.reset_belief()
            heat.reset()
            if visible:
                sensing.update_sight(True, (9.0, 9.0), ctx.time)
            if hot:
                heat.add_node_heat('room_0_0', 80.0)

            total, breakdown = shaper.compute_reward(status, action, duration, ctx)

            assert total == pytest.approx(sum(v for _, v in breakdown.items))
            assert total == pytest.approx(breakdown.total)
            assert shaper.last_breakdown is breakdown


# =============================================================================
# Term Tests
# =============================================================================

class TestRewardTerms:
    """Tests for individual shaping terms."""

    def test_patrol_complete(self, shaper, ctx):
        """A finished patrol earns the completion bonus."""
        _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.PATROL, 1.0, ctx)
        assert breakdown.get(PATROL_COMPLETE) == pytest.approx(0.25)

    def test_failure_penalty(self, shaper, ctx):
        """Failures and timeouts are penalised and never count as no-info."""
        _, breakdown = shaper.compute_reward(OptionStatus.FAILED, OptionType.SWEEP, 1.0, ctx)

        assert breakdown.get(FAILURE_TIMEOUT) == pytest.approx(-0.5)
        assert NO_INFO not in breakdown

    def test_see_player(self, shaper, ctx, sensing):
        """Visual contact at option end is rewarded."""
        sensing.update_sight(True, (9.0, 9.0), ctx.time)
        _, breakdown = shaper.compute_reward(OptionStatus.RUNNING, OptionType.SWEEP, 1.0, ctx)
        assert breakdown.get(SEE_PLAYER) == pytest.approx(1.0)

    def test_new_room_once_per_episode(self, shaper, ctx):
        """A room earns the exploration bonus only on its first visit."""
        _, first = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.SWEEP, 1.0, ctx)
        _, second = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.PATROL, 1.0, ctx)

        assert first.get(NEW_ROOM) == pytest.approx(0.15)
        assert NEW_ROOM not in second
        assert shaper.visited_rooms == {'room_0_0'}

    def test_hot_room(self, shaper, ctx, heat):
        """Ending in a room hotter than half the cap is rewarded."""
        heat.add_node_heat('room_0_0', 60.0)
        _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.SWEEP, 1.0, ctx)
        assert breakdown.get(HOT_ROOM) == pytest.approx(0.2)

    def test_distance_improvement(self, shaper, ctx, sensing, mover):
        """Moving closer to the belief target is rewarded per metre."""
        sensing.hear_noise((25.0, 5.0), ctx.time)
        shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.SWEEP, 1.0, ctx)

        mover.position = (15.0, 5.0)
        _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.PATROL, 1.0, ctx)
        assert breakdown.get(DISTANCE_IMPROVEMENT) == pytest.approx(10.0 * 0.2)

    def test_distance_regression_not_penalised(self, shaper, ctx, sensing, mover):
        """Moving away adds no distance term."""
        sensing.hear_noise((25.0, 5.0), ctx.time)
        mover.position = (15.0, 5.0)
        shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.SWEEP, 1.0, ctx)

        mover.position = (5.0, 5.0)
        _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.PATROL, 1.0, ctx)
        assert DISTANCE_IMPROVEMENT not in breakdown

    def test_spot_cleared(self, shaper, ctx):
        """A successful hide-spot check earns the clearing bonus."""
        _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.HIDE_SPOT_CHECK,
                                             1.0, ctx)
        assert breakdown.get(SPOT_CLEARED) == pytest.approx(0.4)

    def test_time_cost_threshold(self, shaper, ctx):
        """Time cost appears only once its magnitude exceeds 0.01."""
        _, short = shaper.compute_reward(OptionStatus.RUNNING, OptionType.SWEEP, 1.0, ctx)
        _, long = shaper.compute_reward(OptionStatus.RUNNING, OptionType.PATROL, 10.0, ctx)

        assert TIME_COST not in short
        assert long.get(TIME_COST) == pytest.approx(-0.05)

    def test_no_info(self, shaper):
        """Nothing learned and no progress costs the no-info penalty."""
        ctx = AgentContext(time=10.0)
        _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.SWEEP, 1.0, ctx)
        assert breakdown.get(NO_INFO) == pytest.approx(-0.15)


# =============================================================================
# Repetition Tests
# =============================================================================

class TestRepetition:
    """Tests for the repetition penalty."""

    def _repetition_terms(self, shaper, ctx, action, times):
        terms = []
        for _ in range(times):
            _, breakdown = shaper.compute_reward(OptionStatus.SUCCEEDED, action, 1.0, ctx)
            terms.append(breakdown.get(REPETITION))
        return terms

    def test_fourth_repeat_more_negative_than_second(self, shaper):
        """Four identical actions in a row: the 4th term is below the 2nd."""
        ctx = AgentContext(time=0.0)
        terms = self._repetition_terms(shaper, ctx, OptionType.SWEEP, 4)

        assert terms[3] < terms[1]
        assert terms[:3] == [0.0, 0.0, 0.0]
        assert terms[3] == pytest.approx(-0.1)

    def test_escalation(self, shaper):
        """Past the escalation threshold the penalty is multiplied."""
        ctx = AgentContext(time=0.0)
        terms = self._repetition_terms(shaper, ctx, OptionType.SWEEP, 7)

        # counts 0..6; count 6 > 5 -> -0.1 * 4 * 2.5
        assert terms[5] == pytest.approx(-0.3)
        assert terms[6] == pytest.approx(-1.0)

    def test_change_resets_count(self, shaper):
        """A different action resets the consecutive count."""
        ctx = AgentContext(time=0.0)
        self._repetition_terms(shaper, ctx, OptionType.SWEEP, 5)
        assert shaper.same_action_count == 4

        shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.AMBUSH, 1.0, ctx)
        assert shaper.same_action_count == 0

    def test_initial_last_action_is_patrol(self, shaper):
        """A first Patrol already counts as a repeat."""
        ctx = AgentContext(time=0.0)
        shaper.compute_reward(OptionStatus.SUCCEEDED, OptionType.PATROL, 1.0, ctx)
        assert shaper.same_action_count == 1

    def test_reset(self, shaper, ctx):
        """reset clears repeats and visited rooms."""
        self._repetition_terms(shaper, ctx, OptionType.SWEEP, 3)
        shaper.reset()

        assert shaper.same_action_count == 0
        assert shaper.visited_rooms == set()

    def test_statistics(self, shaper):
        """Statistics accumulate term totals."""
        ctx = AgentContext(time=0.0)
        self._repetition_terms(shaper, ctx, OptionType.SWEEP, 4)
        stats = shaper.get_statistics()

        assert stats['num_computations'] == 4
        assert stats['term_totals'][REPETITION] == pytest.approx(-0.1)


class TestCustomWeights:
    """Tests with non-default weights."""

    def test_custom_config(self, ctx, sensing):
        """Weights come from the config."""
        shaper = RewardShaper(RewardConfig(see_player_reward=3.0, new_room_reward=0.0))
        sensing.update_sight(True, (9.0, 9.0), ctx.time)
        _, breakdown = shaper.compute_reward(OptionStatus.RUNNING, OptionType.SWEEP, 1.0, ctx)

        assert breakdown.get(SEE_PLAYER) == pytest.approx(3.0)
