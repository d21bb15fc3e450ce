"""Tests for the workout generator: count bands, selection, volume, stats, structure."""

from __future__ import annotations

import random

import pytest

from trainer.api import deps
from trainer.engine.context_builder import GenerationContext
from trainer.engine.contextual_engine import filter_and_score
from trainer.engine.workout_generator import (
    assign_reps_or_hold,
    choose_structure,
    compute_stats,
    compute_volume_adjustment,
    count_band,
    exercise_seconds,
    generate_workout,
    is_primary,
    select_exercises,
    select_for_difficulty,
    target_count,
)
from trainer.tests.factories import make_exercise, make_scored


def _ctx(**kw):
    kw.setdefault("location", "home")
    kw.setdefault("available_time", 30)
    return GenerationContext(**kw)


def _compound(ex_id, **kw):
    kw.setdefault("movement_type", "compound")
    return make_exercise(ex_id, **kw)


def _at_offset(ex_id, score, offset, level=5):
    """Scored compound candidate *offset* levels away from the user's *level*."""
    item = make_scored(ex_id, "none", score, tags=["compound"], recommended_level=level + offset)
    item["effective_level"] = level
    return item


def _workout(exercises, ctx, **kw):
    scored = filter_and_score(exercises, ctx)["exercises"]
    return generate_workout(scored, ctx, **kw)


# ── Count bands ────────────────────────────────────────────────────────

class TestCountBand:
    @pytest.mark.parametrize(
        "minutes,expected",
        [
            (0, (2, 3, False)),
            (10, (2, 3, False)),
            (15, (4, 5, False)),
            (30, (4, 5, False)),
            (45, (6, 8, True)),
            (60, (7, 10, True)),
            (120, (7, 10, True)),
        ],
    )
    def test_bands(self, minutes, expected):
        assert count_band(minutes) == expected

    def test_lower_bound_without_rng(self):
        assert target_count(45) == 6

    def test_rng_stays_in_band(self):
        picks = {target_count(45, rng=random.Random(seed)) for seed in range(30)}
        assert picks <= {6, 7, 8}


# ── Selection ──────────────────────────────────────────────────────────

class TestSelection:
    def test_straight_arm_deferred_when_alternatives_exist(self):
        scored = [
            make_scored("sa1", "straight_arm", 10),
            make_scored("sa2", "straight_arm", 9),
            make_scored("sa3", "straight_arm", 8),
            make_scored("sa4", "straight_arm", 7),
            make_scored("ba1", "bent_arm", 1),
            make_scored("none1", "none", 0),
        ]
        picked = select_exercises(scored, 4, include_accessories=True)
        assert [p["exercise"]["id"] for p in picked] == ["sa1", "sa2", "ba1", "none1"]

    def test_straight_arm_allowed_when_alternatives_run_out(self):
        scored = [make_scored(f"sa{i}", "straight_arm", 10 - i) for i in range(4)]
        scored.append(make_scored("ba1", "bent_arm", 1))
        picked = select_exercises(scored, 4, include_accessories=True)
        mech = [p["mechanical_type"] for p in picked]
        assert mech.count("straight_arm") == 3
        assert [p["exercise"]["id"] for p in picked] == ["sa0", "sa1", "sa2", "ba1"]

    def test_short_session_prefers_primaries(self):
        scored = [
            make_scored("iso1", "none", 10, tags=["isolation"]),
            make_scored("iso2", "none", 9, tags=["isolation"]),
            make_scored("comp1", "none", 5, tags=["compound"]),
            make_scored("skill1", "straight_arm", 4, tags=["skill"]),
        ]
        picked = select_exercises(scored, 2, include_accessories=False)
        assert [p["exercise"]["id"] for p in picked] == ["comp1", "skill1"]

    def test_short_session_never_pads_with_accessories(self):
        scored = [make_scored("iso1", "none", 10, tags=["isolation"]), make_scored("comp1", "none", 5, tags=["compound"])]
        picked = select_exercises(scored, 3, include_accessories=False)
        assert [p["exercise"]["id"] for p in picked] == ["comp1"]

    def test_short_session_without_primaries_is_empty(self):
        scored = [make_scored("iso1", "none", 10, tags=["isolation"]), make_scored("plain", "bent_arm", 5)]
        assert select_exercises(scored, 2, include_accessories=False) == []

    def test_full_body_counts_as_primary(self):
        assert is_primary(make_exercise("flow", primary_muscle="full_body"))
        assert not is_primary(make_exercise("flow", primary_muscle="full_body", tags=["isolation"]))
        assert not is_primary(make_exercise("press"))

    def test_accessory_mode_primary_share(self):
        scored = [
            make_scored("iso1", "none", 10, tags=["isolation"]),
            make_scored("iso2", "none", 9, tags=["isolation"]),
            make_scored("iso3", "none", 8, tags=["isolation"]),
            make_scored("c1", "none", 5, tags=["compound"]),
            make_scored("c2", "none", 4, tags=["compound"]),
            make_scored("c3", "none", 3, tags=["compound"]),
            make_scored("c4", "none", 2, tags=["compound"]),
        ]
        picked = select_exercises(scored, 5, include_accessories=True)
        assert [p["exercise"]["id"] for p in picked] == ["iso1", "iso2", "c1", "c2", "c3"]

    def test_no_repeated_ids(self):
        scored = [make_scored("a", "none", 5), make_scored("a", "none", 4), make_scored("b", "none", 3)]
        picked = select_exercises(scored, 3, include_accessories=True)
        assert [p["exercise"]["id"] for p in picked] == ["a", "b"]



class TestDifficultySelection:
    def _pool(self):
        return [
            _at_offset("up3", 12, 3),
            _at_offset("up2", 11, 2),
            _at_offset("up1", 10, 1),
            _at_offset("at_a", 9, 0),
            _at_offset("at_b", 8, 0),
            _at_offset("down1", 7, -1),
            _at_offset("down2", 6, -2),
        ]

    def test_easy_keeps_only_below_level(self):
        picked = select_exercises(self._pool(), 4, include_accessories=True, difficulty=1)
        assert [p["exercise"]["id"] for p in picked] == ["down1", "down2"]

    def test_easy_falls_back_to_at_level(self):
        pool = [_at_offset("up1", 10, 1), _at_offset("at_a", 9, 0)]
        assert [s["exercise"]["id"] for s in select_for_difficulty(pool, 4, difficulty=1)] == ["at_a"]

    def test_normal_keeps_within_one_level(self):
        picked = select_exercises(self._pool(), 5, include_accessories=True, difficulty=2)
        assert [p["exercise"]["id"] for p in picked] == ["up1", "at_a", "at_b", "down1"]

    def test_intense_adds_over_level_work(self):
        picked = select_exercises(self._pool(), 4, include_accessories=True, difficulty=3)
        assert [p["exercise"]["id"] for p in picked] == ["up2", "up1", "at_a", "at_b"]

    def test_intense_over_level_share(self):
        window = select_for_difficulty(self._pool(), 3, difficulty=3)
        assert [s["exercise"]["id"] for s in window] == ["at_a", "at_b", "down1"]
        window = select_for_difficulty(self._pool(), 10, difficulty=3)
        assert [s["exercise"]["id"] for s in window][:2] == ["up2", "up1"]
        assert "up3" not in [s["exercise"]["id"] for s in window]

    def test_generated_workout_follows_context_difficulty(self):
        exercises = [_compound("hard", recommended_level=6), _compound("base", recommended_level=5), _compound("light", recommended_level=4)]
        easy = _workout(exercises, _ctx(user_level=5, difficulty=1))
        assert [e["exercise_id"] for e in easy["exercises"]] == ["light"]
        normal = _workout(exercises, _ctx(user_level=5, difficulty=2))
        assert sorted(e["exercise_id"] for e in normal["exercises"]) == ["base", "hard", "light"]


# ── Reactivation protocol ──────────────────────────────────────────────

class TestVolumeAdjustment:
    def test_level_ten_five_days_inactive(self):
        adj = compute_volume_adjustment(10, 5)
        assert adj["original_sets"] == 3
        assert adj["adjusted_sets"] == 2
        assert adj["reduction_percent"] == 33
        assert adj["reason"] == "inactivity"
        assert adj["badge"]

    def test_threshold_is_exclusive(self):
        adj = compute_volume_adjustment(10, 3)
        assert adj == {
            "reason": None,
            "original_sets": 3,
            "adjusted_sets": 3,
            "reduction_percent": 0,
            "badge": None,
        }

    def test_high_level_reduction(self):
        adj = compute_volume_adjustment(25, 10)
        assert (adj["original_sets"], adj["adjusted_sets"], adj["reduction_percent"]) == (5, 3, 40)

    def test_easy_difficulty_removes_a_set(self):
        adj = compute_volume_adjustment(10, 0, difficulty=1)
        assert adj["adjusted_sets"] == 2
        assert adj["reason"] == "easy_difficulty"
        assert adj["badge"] is None

    def test_easy_and_inactive(self):
        adj = compute_volume_adjustment(25, 7, difficulty=1)
        assert adj["adjusted_sets"] == 2
        assert adj["reduction_percent"] == 60
        assert adj["reason"] == "inactivity"

    @pytest.mark.parametrize("level", [1, 5, 6, 12, 13, 20, 21, 30])
    @pytest.mark.parametrize("difficulty", [1, 2, 3])
    def test_monotone_and_floored(self, level, difficulty):
        sets = [compute_volume_adjustment(level, days, difficulty)["adjusted_sets"] for days in range(0, 40)]
        assert all(a >= b for a, b in zip(sets, sets[1:]))
        assert min(sets) >= 2


# ── Reps / hold ────────────────────────────────────────────────────────

class TestRepsAndHolds:
    def test_reps_from_level_table(self):
        assert assign_reps_or_hold(make_exercise("a"), 1) == (6, None)
        assert assign_reps_or_hold(make_exercise("a"), 9) == (10, None)
        assert assign_reps_or_hold(make_exercise("a"), 99) == (18, None)

    def test_authored_reps_win(self):
        assert assign_reps_or_hold(make_exercise("a", volume_defaults={"reps": 3}), 9) == (3, None)

    def test_hold_from_level_table(self):
        ex = make_exercise("hold", movement_group="squat", mechanical_type="none", is_time_based=True)
        assert assign_reps_or_hold(ex, 1) == (None, 15)

    def test_straight_arm_hold_capped(self):
        ex = make_exercise("lever", mechanical_type="straight_arm", is_time_based=True, volume_defaults={"hold_seconds": 30})
        assert assign_reps_or_hold(ex, 1) == (None, 15)

    def test_handstand_cap(self):
        ex = make_exercise(
            "hs",
            mechanical_type="straight_arm",
            is_time_based=True,
            tags=["handstand"],
            volume_defaults={"hold_seconds": 90},
        )
        assert assign_reps_or_hold(ex, 1) == (None, 60)

    def test_core_cap_scales_with_level(self):
        ex = make_exercise(
            "plank", movement_group="core", mechanical_type="none", is_time_based=True, volume_defaults={"hold_seconds": 45}
        )
        assert assign_reps_or_hold(ex, 3) == (None, 36)
        assert assign_reps_or_hold(ex, 10) == (None, 45)

    def test_minimum_hold(self):
        ex = make_exercise("tiny", mechanical_type="none", is_time_based=True, volume_defaults={"hold_seconds": 2})
        assert assign_reps_or_hold(ex, 1) == (None, 5)


# ── Stats and structure ────────────────────────────────────────────────

class TestStats:
    def test_single_exercise_workout(self):
        workout = _workout([_compound("a")], _ctx())
        (entry,) = workout["exercises"]
        assert (entry["sets"], entry["reps"], entry["hold_seconds"], entry["rest_seconds"]) == (2, 6, None, 90)
        assert workout["estimated_duration"] == 3
        assert workout["stats"]["calories"] == 50
        assert workout["stats"]["coins"] == 50
        assert workout["stats"]["total_reps"] == 12
        assert workout["structure"] == "standard"

    def test_unilateral_doubles_work(self):
        workout = _workout([_compound("lunge", symmetry="unilateral")], _ctx())
        assert exercise_seconds(workout["exercises"][0]) == 6 * 3 * 2 * 2 + 90

    def test_calories_and_coins(self):
        stats = compute_stats([], 40, _ctx(difficulty=3, user_weight=80.0))
        assert stats["calories"] == 448
        assert stats["coins"] == 672
        assert stats["difficulty_multiplier"] == 1.5

    def test_eight_second_hold_rests_three_minutes(self):
        ex = _compound(
            "iso_hold", movement_group="squat", mechanical_type="none", is_time_based=True, volume_defaults={"hold_seconds": 8}
        )
        workout = _workout([ex], _ctx())
        entry = workout["exercises"][0]
        assert entry["hold_seconds"] == 8
        assert entry["rest_seconds"] == 180


class TestStructure:
    def test_blast_short_is_amrap(self):
        structure, details = choose_structure(_ctx(intent_mode="blast", available_time=15), 4, 15)
        assert structure == "amrap"
        assert details["duration_minutes"] == 15

    @pytest.mark.parametrize("minutes", [20, 45])
    def test_blast_long_is_emom(self, minutes):
        structure, details = choose_structure(_ctx(intent_mode="blast", available_time=minutes), 6, minutes)
        assert structure == "emom"
        assert details == {"type": "emom", "duration_minutes": 20, "work_seconds": 40, "rest_seconds": 20}

    def test_circuit_and_standard(self):
        assert choose_structure(_ctx(), 3, 15) == ("circuit", None)
        assert choose_structure(_ctx(), 4, 15) == ("standard", None)
        assert choose_structure(_ctx(), 3, 20) == ("standard", None)


# ── Whole-workout behaviour ────────────────────────────────────────────

class TestGenerateWorkout:
    def _holds(self):
        return [
            _compound(
                f"hold_{c}",
                movement_group="squat",
                mechanical_type="none",
                is_time_based=True,
                volume_defaults={"hold_seconds": 120},
            )
            for c in "ab"
        ]

    def test_time_box_drops_tail(self):
        workout = _workout(self._holds(), _ctx(available_time=5))
        assert [e["exercise_id"] for e in workout["exercises"]] == ["hold_a"]
        assert workout["estimated_duration"] == 6
        assert workout["trace"]["counts"]["selected"] == 2
        assert workout["trace"]["counts"]["after_time_box"] == 1

    def test_never_below_one_exercise(self):
        workout = _workout(self._holds(), _ctx(available_time=1))
        assert len(workout["exercises"]) == 1

    def test_on_the_way_caps_session(self):
        workout = _workout([_compound("a")], _ctx(intent_mode="on_the_way", available_time=60))
        assert workout["trace"]["session_minutes"] == 15
        assert workout["trace"]["counts"]["band_min"] == 4
        assert workout["title"] == "On-the-Way Workout"

    def test_blast_rest_on_every_exercise(self):
        exercises = [_compound(f"e{i}", mechanical_type="hybrid", tags=["hiit_friendly"]) for i in range(5)]
        workout = _workout(exercises, _ctx(intent_mode="blast", available_time=20))
        assert {e["rest_seconds"] for e in workout["exercises"]} == {30}
        assert workout["structure"] == "emom"
        assert workout["blast_mode"]["type"] == "emom"

    def test_reactivation_applied_to_every_exercise(self):
        exercises = [_compound(f"e{i}", recommended_level=10) for i in range(4)]
        workout = _workout(exercises, _ctx(user_level=10, days_inactive=5))
        assert workout["volume_adjustment"]["reduction_percent"] == 33
        assert {e["sets"] for e in workout["exercises"]} == {2}
        assert workout["ai_cue"]

    def test_keeps_score_order_and_priority(self):
        exercises = [_compound(i) for i in ("delta", "alpha", "charlie", "bravo")]
        workout = _workout(exercises, _ctx())
        assert [e["exercise_id"] for e in workout["exercises"]] == ["alpha", "bravo", "charlie", "delta"]
        assert [e["priority"] for e in workout["exercises"]] == [1, 2, 3, 4]

    def test_straight_arm_only_still_produces_workout(self):
        exercises = [_compound(f"sa{i}", mechanical_type="straight_arm") for i in range(3)]
        workout = _workout(exercises, _ctx())
        assert len(workout["exercises"]) == 3
        assert workout["mechanical_balance"]["is_balanced"] is False
        assert workout["mechanical_balance"]["warning"]

    def test_deterministic_without_rng(self):
        ctx = _ctx(location="home", available_time=45, user_level=4)
        scored = filter_and_score(deps.get_exercise_catalog(), ctx)["exercises"]
        assert generate_workout(scored, ctx) == generate_workout(scored, ctx)

    def test_balance_invariant_on_real_catalog(self):
        ctx = _ctx(location="park", available_time=60, user_level=7)
        scored = filter_and_score(
            deps.get_exercise_catalog(),
            ctx,
            park=deps.get_park_by_id("yarkon_fitness"),
            equipment_definitions=deps.get_fixed_equipment_definitions(),
        )["exercises"]
        for seed in range(10):
            workout = generate_workout(scored, ctx, rng=random.Random(seed))
            target = workout["trace"]["counts"]["target"]
            window = select_for_difficulty(scored, target * 2, ctx.difficulty)
            non_sa = [s for s in window if s["mechanical_type"] != "straight_arm"]
            sa_count = sum(1 for e in workout["exercises"] if e["mechanical_type"] == "straight_arm")
            assert sa_count <= 2 or len(non_sa) < target - 2

    def test_empty_candidates(self):
        workout = generate_workout([], _ctx())
        assert workout["exercises"] == []
        assert workout["estimated_duration"] == 0
        assert workout["stats"]["calories"] == 0
