"""
Unit tests for target selection.

Tests:
- Candidate features
- Linear scorer output and online updates
- Room and hide-spot selection, including empty registries
"""

import numpy as np
import pytest

from src.agents.pursuit import (
    AgentContext,
    LinearTargetScorer,
    TargetFeatures,
    TargetSelectionConfig,
    TargetSelector,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def selector():
    """Selector without exploration."""
    return TargetSelector(TargetSelectionConfig(explore=False), np.random.default_rng(0))


# =============================================================================
# Feature Tests
# =============================================================================

class TestFeatures:
    """Tests for candidate features."""

    def test_feature_vector(self):
        """Features flatten to six values in declaration order."""
        features = TargetFeatures(heat_at_target=0.5, objective_likelihood=0.25)
        array = features.to_array()

        assert array.shape == (TargetFeatures.FEATURE_COUNT,)
        assert array[0] == 0.5
        assert array[5] == 0.25

    def test_room_features_normalized(self, selector, ctx, heat, sensing, layout):
        """Room features stay within [0, 1]."""
        heat.add_node_heat('room_2_2', 500.0)
        sensing.hear_noise((25.0, 25.0), ctx.time)
        for room in layout.get_all_rooms():
            array = selector.extract_room_features(room, ctx).to_array()
            assert np.all(array >= 0.0)
            assert np.all(array <= 1.0)

    def test_current_room_is_closest(self, selector, ctx, layout):
        """Closeness is 1 at the room the agent stands in."""
        features = selector.extract_room_features(layout.get_room('room_0_0'), ctx)
        assert features.closeness == pytest.approx(1.0)

    def test_hide_spot_staleness(self, selector, ctx, layout):
        """A spot never checked is fully stale; a fresh check is not."""
        spot = layout.get_hide_spots_in_room('room_0_0')[0]
        assert selector.extract_hide_spot_features(spot, ctx).staleness == 1.0

        spot.mark_checked(False, ctx.time)
        assert selector.extract_hide_spot_features(spot, ctx).staleness == 0.0


# =============================================================================
# Scorer Tests
# =============================================================================

class TestLinearTargetScorer:
    """Tests for the perceptron scorer."""

    def test_sigmoid_range(self):
        """Sigmoid scores lie strictly between 0 and 1."""
        scorer = LinearTargetScorer()
        score = scorer.score(np.ones(6))
        assert 0.0 < score < 1.0

    def test_clamped_linear(self):
        """Without the sigmoid the activation is clamped."""
        scorer = LinearTargetScorer(use_sigmoid=False)
        assert scorer.score(np.full(6, 10.0)) == 1.0
        assert scorer.score(np.full(6, -10.0)) == 0.0

    def test_wrong_feature_count(self):
        """Mismatched feature vectors score zero."""
        assert LinearTargetScorer().score(np.ones(3)) == 0.0

    def test_update_moves_toward_target(self):
        """An update reduces the error on the same example."""
        scorer = LinearTargetScorer(learning_rate=0.5)
        features = np.array([1.0, 0.0, 0.5, 0.0, 0.0, 1.0])

        before = abs(1.0 - scorer.score(features))
        scorer.update(features, 1.0)
        after = abs(1.0 - scorer.score(features))

        assert after < before
        assert scorer.update_count == 1
        assert scorer.current_learning_rate == pytest.approx(0.5 * 0.999)

    def test_reset_learning(self):
        """reset_learning restores the learning rate."""
        scorer = LinearTargetScorer(learning_rate=0.2)
        scorer.update(np.ones(6), 0.0)
        scorer.reset_learning()

        assert scorer.current_learning_rate == 0.2
        assert scorer.update_count == 0

    def test_weight_summary(self):
        """The summary lists every weight plus bias and learning rate."""
        summary = LinearTargetScorer().get_weight_summary()
        assert {'w0', 'w5', 'bias', 'learning_rate', 'updates'} <= set(summary)


# =============================================================================
# Selection Tests
# =============================================================================

class TestSelection:
    """Tests for choosing rooms and hide spots."""

    def test_patrol_route(self, selector, ctx):
        """Routes skip the current room and junctions."""
        route = selector.select_patrol_route(ctx, 3)
        ids = [t.room_id for t in route]

        assert len(ids) == 3
        assert 'room_0_0' not in ids
        assert 'room_1_1' not in ids
        assert selector.last_scores_log.startswith("Scores:")

    def test_route_sorted_by_score(self, selector, ctx):
        """Route rooms are in descending score order."""
        route = selector.select_patrol_route(ctx, 5)
        scores = [t.score for t in route]
        assert scores == sorted(scores, reverse=True)

    def test_patrol_room_exclusions(self, selector, ctx):
        """Excluded rooms are never chosen."""
        choice = selector.select_patrol_room(ctx, exclude_rooms=['room_0_0'])
        assert choice is not None
        assert choice.room_id != 'room_0_0'

    def test_hide_spots_top_k(self, selector, ctx):
        """At most k spots of the requested room are returned."""
        spots = selector.select_hide_spots(ctx, 'room_0_0', top_k=1)

        assert len(spots) == 1
        assert spots[0].spot.room_id == 'room_0_0'

    def test_empty_registry(self, selector):
        """No registry gives empty results instead of raising."""
        ctx = AgentContext(time=0.0)

        assert selector.select_patrol_room(ctx) is None
        assert selector.select_patrol_route(ctx) == []
        assert selector.select_hide_spots(ctx, 'room_0_0') == []

    def test_training_changes_ranking_scores(self, selector, ctx):
        """Training the room scorer changes the score of that room."""
        target = selector.select_patrol_route(ctx, 1)[0]
        before = selector.room_scorer.score(target.features.to_array())

        for _ in range(20):
            selector.train_room_scorer(target, 0.0)

        assert selector.room_scorer.score(target.features.to_array()) < before

    def test_exploration_stays_in_candidates(self, ctx):
        """Exploring picks some valid non-junction room."""
        selector = TargetSelector(TargetSelectionConfig(explore=True, epsilon=1.0),
                                  np.random.default_rng(5))
        for _ in range(20):
            choice = selector.select_patrol_room(ctx)
            assert not choice.room.is_junction
