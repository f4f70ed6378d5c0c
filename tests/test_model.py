import itertools
import logging

import pandas as pd
import pytest

from biowaste.agents import Behavior
from biowaste.config import ConfigurationError, ReductionBaseline, SimulationSettings, TerritoryContext
from biowaste.diffusion import IntentionPolicy, SignalSource
from biowaste.model import HOUSEHOLD_FLOWS, SimulationFinished, TerritoryModel, household_count
from biowaste.series import SeriesOrderError

from conftest import make_params

HORIZON = 6


def run(params, context=None, **settings) -> TerritoryModel:
    settings = SimulationSettings(horizon=HORIZON, **settings)
    model = TerritoryModel(params, context or TerritoryContext.constant(HORIZON), settings)
    model.run_simulation()
    return model


def test_reference_territory_year_zero_flows(reference_params) -> None:
    model = run(reference_params)
    s = model.series

    assert s["food_produced"][0] == pytest.approx(1000.0)
    assert s["green_produced"][0] == pytest.approx(1500.0)
    assert s["food_composted"][0] == pytest.approx(300.0)
    assert s["green_composted"][0] == pytest.approx(300.0)
    assert s["food_residual"][0] == pytest.approx(700.0)
    assert s["green_valorised"][0] == pytest.approx(1200.0)
    assert s["food_collected"][0] == 0.0
    assert s["green_collected"][0] == 0.0
    assert s["residual_per_capita_kg"][0] == pytest.approx(70.0)


def test_reference_territory_is_stationary_without_growth_or_plan(reference_params) -> None:
    frame = run(reference_params).territory_frame()

    assert len(frame) == HORIZON
    assert frame["food_composted"].tolist() == pytest.approx([300.0] * HORIZON)
    assert list(frame["calendar_year"]) == list(range(2017, 2017 + HORIZON))


@pytest.mark.parametrize("social", [False, True])
def test_no_capacity_sends_everything_to_residual(social: bool) -> None:
    params = make_params(compost_capacity_initial=0, collection_capacity_initial=0,
                         collection_food_initial=0.2, collection_green_initial=0.3)
    model = run(params, TerritoryContext.constant(HORIZON, use_social_dynamics=social))
    frame = model.territory_frame()

    for column in ("food_composted", "green_composted", "food_collected", "green_collected",
                   "compost_surplus_food", "compost_surplus_green",
                   "collection_surplus_food", "collection_surplus_green"):
        assert (frame[column] == 0.0).all(), column
    assert frame["food_residual"].tolist() == pytest.approx(frame["food_produced"].tolist())
    assert frame["green_valorised"].tolist() == pytest.approx(frame["green_produced"].tolist())


def test_zero_threshold_household_adopts_in_year_one() -> None:
    params = make_params(population=2.1, household_size=2.1, compost_capacity_initial=100,
                         early_adopter_share=100, mainstream_share=0)
    settings = SimulationSettings(horizon=HORIZON)
    model = TerritoryModel(params, TerritoryContext.constant(HORIZON, use_social_dynamics=True), settings)
    household = model.households[0]
    household.thresholds[Behavior.HOME_COMPOSTING] = 0.0

    assert model.num_households == 1
    assert not household.composting_adopted

    model.step()

    assert household.composting_adopted
    assert model.series["compost_adoption_rate"][1] == 1.0
    assert model.series["compost_food_intention"][1] == pytest.approx(1.0)


def test_compost_surplus_flows_into_collection() -> None:
    params = make_params(compost_capacity_initial=100, collection_capacity_initial=150,
                         collection_food_initial=0.2, collection_green_initial=0.1)
    s = run(params).series

    assert s["food_composted"][0] == pytest.approx(100.0)
    assert s["compost_surplus_food"][0] == pytest.approx(200.0)
    assert s["compost_surplus_green"][0] == pytest.approx(500.0)
    assert s["collection_food_intended"][0] == pytest.approx(400.0)
    assert s["food_collected"][0] == pytest.approx(150.0)
    assert s["green_collected"][0] == 0.0
    assert s["food_residual"][0] == pytest.approx(750.0)
    assert s["green_valorised"][0] == pytest.approx(1500.0)
    assert s["collection_coverage"][0] == pytest.approx(150.0 / 550.0)
    assert s["collected_per_served_kg"][0] == pytest.approx(55.0)


def test_skipped_collection_keeps_compost_surplus_as_residual() -> None:
    params = make_params(compost_capacity_initial=100, collection_capacity_initial=0,
                         collection_food_initial=0.2)
    s = run(params).series

    assert s["collection_food_intention"][0] == 0.0
    assert s["collection_food_intended"][0] == pytest.approx(200.0)
    assert s["food_collected"][0] == 0.0
    assert s["collection_surplus_food"][0] == 0.0
    assert s["food_residual"][0] == pytest.approx(900.0)
    assert s["collection_coverage"][0] == 0.0
    assert s["collected_per_served_kg"][0] == 0.0


@pytest.mark.parametrize(
    "compost_capacity, collection_capacity, social",
    list(itertools.product([0.0, 40.0, 350.0, 5000.0], [0.0, 25.0, 400.0, 5000.0], [False, True])),
)
def test_mass_balance_holds_every_year(compost_capacity, collection_capacity, social) -> None:
    params = make_params(
        population=1000, growth_rate=0.02, household_size=5.0,
        compost_food_initial=0.4, compost_green_initial=0.5,
        collection_food_initial=0.3, collection_green_initial=0.6,
        compost_food_max=0.7, collection_food_max=0.5,
        compost_inflection=3, collection_inflection=4,
        plan_effect_food=0.3, plan_effect_green=0.2,
        compost_capacity_initial=compost_capacity, compost_capacity_target=compost_capacity * 2,
        collection_capacity_initial=collection_capacity,
    )
    context = TerritoryContext(plan_intensity=[0.0, 0.2, 0.4, 0.6, 0.8, 1.0], use_social_dynamics=social)
    frame = run(params, context).territory_frame()

    food_out = frame["food_composted"] + frame["food_collected"] + frame["food_residual"]
    green_out = frame["green_composted"] + frame["green_collected"] + frame["green_valorised"]
    assert ((food_out - frame["food_produced"]).abs() <= 1e-6).all()
    assert ((green_out - frame["green_produced"]).abs() <= 1e-6).all()
    assert (frame["compost_food_intention"] + frame["collection_food_intention"] <= 1.0 + 1e-12).all()
    assert (frame[list(HOUSEHOLD_FLOWS)] >= 0.0).all().all()


@pytest.mark.parametrize(
    "population, household_size, expected",
    [(2.0, 2.0, 1), (4.0, 2.0, 2), (34.0, 2.0, 17), (1000.0, 2.3, 434)],
)
def test_household_flows_add_up_to_territory(population, household_size, expected) -> None:
    params = make_params(population=population, household_size=household_size,
                         compost_capacity_initial=population * 0.02,
                         collection_capacity_initial=population * 0.01,
                         collection_food_initial=0.2, collection_green_initial=0.2)
    settings = SimulationSettings(horizon=HORIZON)
    model = TerritoryModel(params, TerritoryContext.constant(HORIZON, use_social_dynamics=True), settings)
    assert model.num_households == expected

    for year in range(HORIZON):
        if year:
            model.step()
        for name in HOUSEHOLD_FLOWS:
            total = sum(getattr(h, name) for h in model.households)
            assert total == pytest.approx(model.series[name][year], abs=1e-9)
        assert all(h.mass_balance_ok() for h in model.households)

    assert model.validate_household_aggregation(year=2, tolerance=1e-9)


def test_household_records_are_collected_every_year(reference_params) -> None:
    params = reference_params.model_copy(update={"population": 50.0, "household_size": 5.0})
    model = run(params)
    households = model.household_frame()

    assert len(households) == 10 * HORIZON
    assert set(households.index.get_level_values("Step")) == set(range(HORIZON))
    for column in ("food_residual", "compost_threshold", "collection_adopted", "adopter_category"):
        assert column in households.columns


def test_household_count() -> None:
    assert household_count(10000, 2.1) == 4761
    assert household_count(100, 0.0) == 0
    assert household_count(0, 2.0) == 0


def test_empty_territory_still_computes_flows() -> None:
    model = run(make_params(household_size=0.0))

    assert model.num_households == 0
    assert model.series["food_composted"][HORIZON - 1] == pytest.approx(300.0)
    assert not model.validate_household_aggregation()


@pytest.mark.parametrize(
    "baseline, expected",
    [(ReductionBaseline.INITIAL, 1.0 - 1.1 ** 2), (ReductionBaseline.PREVIOUS, 1.0 - 1.1)],
)
def test_green_reduction_rate_baselines(baseline, expected) -> None:
    params = make_params(population=100, household_size=10.0, growth_rate=0.1)
    model = run(params, reduction_baseline=baseline)

    assert model.series["green_reduction_rate"][0] == 0.0
    assert model.series["green_reduction_rate"][2] == pytest.approx(expected)


def test_intention_ramp_without_social_dynamics() -> None:
    params = make_params(population=100, household_size=10.0, compost_food_max=0.7, compost_inflection=2)
    s = run(params).series

    assert s["compost_food_intention"][0] == pytest.approx(0.3)
    assert s["compost_food_intention"][2] == pytest.approx(0.5)
    assert s["compost_adoption_rate"][HORIZON - 1] == 0.0


@pytest.mark.parametrize("policy", [IntentionPolicy.INTERPOLATE, IntentionPolicy.DIRECT])
def test_intention_policies(policy) -> None:
    params = make_params(population=400, household_size=2.0, collection_capacity_initial=50,
                         collection_food_initial=0.1)
    model = run(params, TerritoryContext.constant(HORIZON, use_social_dynamics=True), intention_policy=policy)
    s = model.series

    for year in range(1, HORIZON):
        rate = s["compost_adoption_rate"][year]
        expected = rate if policy is IntentionPolicy.DIRECT else 0.3 + 0.7 * rate
        assert s["compost_food_intention"][year] == pytest.approx(expected)
    # year 0 always starts from the observed intentions
    assert s["compost_food_intention"][0] == pytest.approx(0.3)


def test_territory_rate_signal_is_monotone() -> None:
    params = make_params(population=400, household_size=2.0, compost_inflection=3)
    model = run(params, TerritoryContext.constant(HORIZON, use_social_dynamics=True),
                signal_source=SignalSource.TERRITORY_RATE)
    rates = [model.series["compost_adoption_rate"][y] for y in range(HORIZON)]

    assert rates == sorted(rates)
    assert rates[-1] > 0.0


def test_territory_rate_signal_ramps_from_initial_intention() -> None:
    params = make_params(population=400, household_size=2.0, compost_inflection=3)
    model = TerritoryModel(params, TerritoryContext.constant(HORIZON, use_social_dynamics=True),
                           SimulationSettings(horizon=HORIZON, signal_source=SignalSource.TERRITORY_RATE))

    # initial 0.3 sits three years into the ramp, where sigmoid(3, 3) == 0.5
    assert model.territory_signal(Behavior.HOME_COMPOSTING, 0) == pytest.approx(0.3)
    assert model.territory_signal(Behavior.HOME_COMPOSTING, 1) == pytest.approx(0.65)
    assert model.territory_signal(Behavior.DEDICATED_COLLECTION, 1) == 0.0
    assert model.territory_signal(Behavior.HOME_COMPOSTING, 500) <= 1.0


def test_invariant_violations_are_logged_not_raised(caplog) -> None:
    model = TerritoryModel(make_params(population=20.0), TerritoryContext.constant(HORIZON),
                           SimulationSettings(horizon=HORIZON))
    values = model.series.row(0)
    values["food_residual"] = -5.0

    with caplog.at_level(logging.WARNING, logger="biowaste.model"):
        model.check_invariants(0, values)

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("negative values" in m and "food_residual" in m for m in messages)
    assert any("Mass balance error" in m and "(food)" in m for m in messages)
    assert not any("(green)" in m for m in messages)


def test_collection_adoption_waits_for_infrastructure() -> None:
    params = make_params(population=400, household_size=2.0, collection_capacity_initial=0,
                         collection_capacity_target=0)
    model = run(params, TerritoryContext.constant(HORIZON, use_social_dynamics=True),
                signal_source=SignalSource.TERRITORY_RATE)

    assert model.series["collection_adoption_rate"][HORIZON - 1] == 0.0
    assert not any(h.collection_adopted for h in model.households)


def test_same_seed_is_reproducible() -> None:
    params = make_params(population=600, household_size=2.0, collection_capacity_initial=80,
                         collection_food_initial=0.1, early_adopter_share=15, mainstream_share=50)
    context = TerritoryContext.constant(HORIZON, intensity=0.3, use_social_dynamics=True)

    first, second = run(params, context), run(params, context)

    pd.testing.assert_frame_equal(first.territory_frame(), second.territory_frame())
    pd.testing.assert_frame_equal(first.household_frame(), second.household_frame())
    assert first.network.adjacency() == second.network.adjacency()


def test_stepping_past_horizon_raises(reference_params) -> None:
    model = run(reference_params.model_copy(update={"population": 20.0}))

    assert not model.running
    with pytest.raises(SimulationFinished):
        model.step()


def test_series_cannot_be_rewritten(reference_params) -> None:
    model = run(reference_params.model_copy(update={"population": 20.0}))

    with pytest.raises(SeriesOrderError):
        model.series["food_residual"].set(2, 0.0)


def test_short_context_is_rejected(reference_params) -> None:
    with pytest.raises(ConfigurationError):
        TerritoryModel(reference_params, TerritoryContext.constant(3), SimulationSettings(horizon=HORIZON))


def test_capacity_follows_linear_or_supplied_ramp() -> None:
    params = make_params(population=100, household_size=10.0, collection_capacity_initial=0,
                         collection_capacity_target=400, collection_ramp_duration=4)
    linear_model = run(params)
    supplied = TerritoryContext(plan_intensity=[0.0] * HORIZON,
                                collection_capacity_ramp=[0.0, 0.5, 0.5, 1.0, 1.0, 1.0])
    supplied_model = run(params, supplied)

    linear_capacity = [linear_model.series["collection_capacity"][y] for y in range(HORIZON)]
    supplied_capacity = [supplied_model.series["collection_capacity"][y] for y in range(HORIZON)]
    assert linear_capacity == pytest.approx([0.0, 100.0, 200.0, 300.0, 400.0, 400.0])
    assert supplied_capacity == pytest.approx([0.0, 200.0, 200.0, 400.0, 400.0, 400.0])
