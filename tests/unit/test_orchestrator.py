"""
Unit tests for the decision orchestrator.

Tests:
- Decision bookkeeping
- Hard pursuit entry, capture and loss
- Interrupt handling
- Learning at option boundaries and episode ends
- Heuristic chooser, meta-controller wiring and table persistence
"""

import json

import pytest

from src.agents.pursuit import (
    CoarseAction,
    DecisionOrchestrator,
    OrchestratorMode,
    OptionStatus,
    OptionType,
    PursuitConfig,
    create_orchestrator,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def orchestrator(ctx):
    """Orchestrator over the cold test context."""
    return DecisionOrchestrator(ctx, PursuitConfig(seed=0))


def _make(ctx, **overrides):
    return create_orchestrator(ctx, PursuitConfig(seed=0, **overrides))


# =============================================================================
# Decision Tests
# =============================================================================

class TestDecisions:
    """Tests for a single decision."""

    def test_decision_is_recorded(self, orchestrator, ctx):
        """A decision starts a valid option and records it."""
        action = orchestrator.start_new_option()
        record = orchestrator.last_decision

        assert orchestrator.current_option_type == action
        assert action in record.valid_actions
        assert record.start_time == ctx.time
        assert not record.forced
        assert len(record.q_values) == OptionType.count()
        assert orchestrator.stats.decisions == 1

    def test_forced_decision(self, orchestrator):
        """Forced options bypass the policy and are counted."""
        orchestrator.start_new_option(forced=OptionType.PATROL)

        assert orchestrator.last_decision.forced
        assert orchestrator.stats.forced_decisions == 1
        assert orchestrator.stats.option_counts == {'PATROL': 1}

    def test_tick_starts_option(self, orchestrator):
        """The first tick makes a decision."""
        orchestrator.tick(0.1)
        assert orchestrator.stats.decisions >= 1

    def test_decision_info(self, orchestrator):
        """The telemetry snapshot names the mode and option."""
        orchestrator.start_new_option(forced=OptionType.PATROL)
        info = orchestrator.get_decision_info()

        assert info['mode'] == 'OPTION_DRIVEN'
        assert info['current_option'] == 'PATROL'
        assert info['last_decision']['action'] == 'PATROL'
        assert 'meta_mode' not in info


# =============================================================================
# Hard Pursuit Tests
# =============================================================================

class TestHardPursuit:
    """Tests for the visual-contact override."""

    def test_sight_enters_hard_pursuit(self, orchestrator, ctx, sensing, mover):
        """Seeing the target drops the option and starts the chase."""
        orchestrator.start_new_option(forced=OptionType.PATROL)
        sensing.update_sight(True, (8.0, 8.0), ctx.time)
        orchestrator.tick(0.1)

        assert orchestrator.mode == OrchestratorMode.HARD_PURSUIT
        assert orchestrator.current_option_type is None
        assert orchestrator.stats.hard_pursuits == 1
        assert orchestrator.stats.options_interrupted == 1
        assert orchestrator.stats.interrupt_counts == {'SEE_PLAYER': 1}
        assert mover.destination == (8.0, 8.0)

        # The dropped option is learned from once, as interrupted
        assert orchestrator.policy.updates_performed == 1
        assert "Failure/Timeout" not in orchestrator.last_breakdown

    def test_no_decisions_during_pursuit(self, orchestrator, ctx, sensing):
        """The policy is bypassed while chasing."""
        sensing.update_sight(True, (8.0, 8.0), ctx.time)
        orchestrator.tick(0.1)

        assert orchestrator.start_new_option() is None
        assert orchestrator.stats.decisions == 0

    def test_capture(self, orchestrator, ctx, sensing, mover):
        """Closing in on the target captures it and ends hard pursuit."""
        sensing.update_sight(True, (8.0, 8.0), ctx.time)
        orchestrator.tick(0.1)

        mover.position = (7.9, 7.9)
        ctx.time += 0.1
        orchestrator.tick(0.1)

        assert orchestrator.mode == OrchestratorMode.OPTION_DRIVEN
        assert orchestrator.stats.captures == 1
        assert orchestrator.last_capture['position'] == (8.0, 8.0)

    def test_lost_target(self, orchestrator, ctx, sensing):
        """Losing contact for longer than the timeout ends the chase."""
        sensing.update_sight(True, (8.0, 8.0), ctx.time)
        orchestrator.tick(0.1)

        sensing.update_sight(False, None, ctx.time)
        ctx.time += 0.5
        orchestrator.tick(0.5)
        assert orchestrator.mode == OrchestratorMode.HARD_PURSUIT

        ctx.time += 3.5
        orchestrator.tick(0.5)
        assert orchestrator.mode == OrchestratorMode.OPTION_DRIVEN
        assert orchestrator.stats.chase_losses == 1

    def test_disabled_hard_pursuit_forces_investigate(self, ctx, sensing):
        """Without hard pursuit, sight interrupts into Investigate once."""
        orchestrator = _make(ctx, enable_hard_pursuit=False)
        orchestrator.start_new_option(forced=OptionType.PATROL)

        sensing.update_sight(True, (8.0, 8.0), ctx.time)
        ctx.time += 0.1
        orchestrator.tick(0.1)

        assert orchestrator.mode == OrchestratorMode.OPTION_DRIVEN
        assert orchestrator.current_option_type == OptionType.INVESTIGATE
        assert orchestrator.stats.interrupt_counts == {'SEE_PLAYER': 1}

        ctx.time += 0.1
        orchestrator.tick(0.1)
        assert orchestrator.current_option_type == OptionType.INVESTIGATE
        assert orchestrator.stats.decisions == 2


# =============================================================================
# Interrupt Tests
# =============================================================================

class TestInterrupts:
    """Tests for noise and heat interrupts."""

    def test_noise_respects_commitment(self, orchestrator, ctx, sensing):
        """A sound interrupts Patrol only after the commit window."""
        orchestrator.start_new_option(forced=OptionType.PATROL)

        ctx.time += 0.5
        sensing.hear_noise((25.0, 5.0), ctx.time)
        orchestrator.tick(0.5)
        assert orchestrator.current_option_type == OptionType.PATROL

        ctx.time += 2.0
        orchestrator.tick(0.5)
        assert orchestrator.current_option_type == OptionType.INVESTIGATE
        assert orchestrator.stats.interrupt_counts == {'HEAR_NOISE': 1}
        assert orchestrator.last_decision.forced
        assert orchestrator.policy.updates_performed == 1
        assert orchestrator.stats.options_interrupted == 1
        assert "Failure/Timeout" not in orchestrator.last_breakdown

    def test_old_noise_does_not_interrupt(self, orchestrator, ctx, sensing):
        """Sounds heard before the option started are ignored."""
        sensing.hear_noise((25.0, 5.0), ctx.time - 1.0)
        orchestrator.start_new_option(forced=OptionType.PATROL)

        ctx.time += 2.5
        orchestrator.tick(0.5)
        assert orchestrator.current_option_type == OptionType.PATROL

    def test_heat_update_never_interrupts(self, orchestrator, ctx, heat):
        """A new heat peak does not preempt the running option."""
        orchestrator.start_new_option(forced=OptionType.PATROL)
        heat.add_node_heat('room_2_2', 50.0)

        ctx.time += 3.0
        orchestrator.tick(0.5)

        assert orchestrator.current_option_type == OptionType.PATROL
        assert orchestrator.stats.interrupt_counts == {}


# =============================================================================
# Learning Tests
# =============================================================================

class TestLearning:
    """Tests for updates at option and episode boundaries."""

    def test_failed_option_is_learned_from(self, orchestrator, ctx):
        """A failed option is rewarded, learned from and replaced."""
        orchestrator.start_new_option(forced=OptionType.HEAT_SEARCH)
        ctx.time += 0.1
        orchestrator.tick(0.1)

        assert orchestrator.stats.options_failed == 1
        assert orchestrator.policy.updates_performed == 1
        assert orchestrator.stats.decisions == 2
        assert orchestrator.last_breakdown.get("Failure/Timeout") < 0.0

    def test_no_learning_when_disabled(self, ctx):
        """With learning off the table is never updated."""
        orchestrator = _make(ctx, enable_learning=False)
        orchestrator.start_new_option(forced=OptionType.HEAT_SEARCH)
        ctx.time += 0.1
        orchestrator.tick(0.1)

        assert orchestrator.policy.updates_performed == 0
        assert orchestrator.apply_terminal_reward(True, 10.0) is None

    def test_terminal_reward(self, orchestrator):
        """The episode outcome is credited to the last decision."""
        assert orchestrator.apply_terminal_reward(True, 5.0) is None

        orchestrator.start_new_option(forced=OptionType.PATROL)
        result = orchestrator.apply_terminal_reward(True, 5.0)

        assert result.action == OptionType.PATROL.value
        assert result.reward == 10.0
        assert result.duration == 5.0

    def test_end_episode(self, orchestrator, ctx, sensing):
        """Episode end decays epsilon and clears per-episode state."""
        sensing.update_sight(True, (8.0, 8.0), ctx.time)
        orchestrator.tick(0.1)
        orchestrator.end_episode()

        assert orchestrator.policy.epsilon == pytest.approx(0.3 * 0.995)
        assert orchestrator.mode == OrchestratorMode.OPTION_DRIVEN
        assert orchestrator.stats.hard_pursuits == 0
        assert orchestrator.last_decision is None
        assert not orchestrator.chase.is_chasing


# =============================================================================
# Heuristic Tests
# =============================================================================

class TestHeuristic:
    """Tests for the fixed chooser used when learning is off."""

    def test_hide_spot_check_near_spots(self, ctx):
        """Next to hide spots the exact variant checks them."""
        orchestrator = _make(ctx, enable_learning=False, use_compact_state=False)
        assert orchestrator.start_new_option() == OptionType.HIDE_SPOT_CHECK

    def test_masked_choice_falls_back_to_patrol(self, ctx):
        """The compact mask rules hide-spot checks out on a cold map."""
        orchestrator = _make(ctx, enable_learning=False)
        assert orchestrator.start_new_option() == OptionType.PATROL

    def test_sound_means_investigate(self, ctx, sensing):
        """A recent sound leads to Investigate."""
        sensing.hear_noise((25.0, 5.0), ctx.time)
        orchestrator = _make(ctx, enable_learning=False)
        assert orchestrator.start_new_option() == OptionType.INVESTIGATE


# =============================================================================
# State and Meta-Controller Tests
# =============================================================================

class TestWiring:
    """Tests for compressor choice, meta-controller and persistence."""

    def test_exact_state_tracks_last_action(self, ctx):
        """The exact key carries the option just selected."""
        orchestrator = _make(ctx, use_compact_state=False)
        orchestrator.start_new_option(forced=OptionType.AMBUSH)

        assert orchestrator.extract_state().last_action == OptionType.AMBUSH.value

    def test_meta_controller(self, ctx):
        """With the meta-controller on, each decision carries a coarse action."""
        config = PursuitConfig(seed=0)
        config.meta.enabled = True
        orchestrator = DecisionOrchestrator(ctx, config)
        orchestrator.start_new_option()

        assert isinstance(orchestrator.last_decision.coarse_action, CoarseAction)
        assert orchestrator.last_decision.coarse_action != CoarseAction.GO_TO_LAST_SEEN
        assert 'meta_mode' in orchestrator.get_decision_info()
        assert 'meta' in orchestrator.get_episode_statistics()

    def test_forced_option_not_credited_to_meta(self, ctx):
        """A forced option after an interrupt leaves the coarse table alone."""
        config = PursuitConfig(seed=0)
        config.meta.enabled = True
        orchestrator = DecisionOrchestrator(ctx, config)

        orchestrator.start_new_option()
        orchestrator._finish_option(OptionStatus.RUNNING)
        orchestrator.start_new_option(forced=OptionType.INVESTIGATE)
        orchestrator._finish_option(OptionStatus.FAILED)

        assert orchestrator.meta.decisions_made == 1
        assert orchestrator.meta.policy.updates_performed == 1
        assert orchestrator.policy.updates_performed == 2

    def test_save_and_load_tables(self, ctx, tmp_path):
        """Tables are stored under their keys and load back."""
        path = str(tmp_path / 'tables.json')
        config = PursuitConfig(seed=0)
        config.meta.enabled = True
        orchestrator = DecisionOrchestrator(ctx, config)
        orchestrator.start_new_option()
        orchestrator.save_tables(path)

        with open(path) as f:
            document = json.load(f)
        assert set(document) == {'qtable_simple', 'qtable_coarse'}

        fresh = DecisionOrchestrator(ctx, config)
        assert fresh.load_tables(path)
        assert fresh.policy.q_table.keys() == orchestrator.policy.q_table.keys()

    def test_load_missing_tables(self, orchestrator, tmp_path):
        """A missing table file leaves empty tables."""
        assert not orchestrator.load_tables(str(tmp_path / 'absent.json'))
        assert orchestrator.policy.q_table == {}
