"""
Property-based tests for limit amounts, display values, validation,
migration and the ordering/default invariants of the option service.
"""

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from coverage_limits.repositories.memory_store import InMemoryDocumentStore
from coverage_limits.schemas.legacy import LegacyLimit, LegacyLimitType
from coverage_limits.schemas.limit_options import (
    AUTO_LIABILITY_SPLIT,
    CoverageLimitOption,
    LimitOptionInput,
    LimitOptionSetInput,
    LimitStructure,
    OccAggLimitValue,
    SingleLimitValue,
    SplitLimitComponent,
    SplitLimitValue,
)
from coverage_limits.services.limits.amounts import format_currency, parse_shorthand_amount
from coverage_limits.services.limits.display import generate_display_value
from coverage_limits.services.limits.migration import build_migration_result, convert_legacy_to_option_value
from coverage_limits.services.limits.option_service import LimitOptionService
from coverage_limits.services.limits.validation import (
    find_duplicate_options,
    option_value_key,
    validate_limit_option,
)

PRODUCT_ID = "prod-1"
COVERAGE_ID = "cov-1"


# =============================================================================
# STRATEGIES
# =============================================================================

amount_strategy = st.integers(min_value=0, max_value=10_000_000_000)


@st.composite
def shorthand_strategy(draw) -> str:
    """Shorthand inputs like ``$1,250.5k`` or ``300000``."""
    cents = draw(st.integers(min_value=0, max_value=999_999_99))
    whole, fraction = divmod(cents, 100)
    number = f"{whole:,}" if draw(st.booleans()) else str(whole)
    if draw(st.booleans()):
        number = f"{number}.{fraction:02d}"
    prefix = draw(st.sampled_from(["", "$", "$ "]))
    suffix = draw(st.sampled_from(["", "k", "K", "m", "M", "b"]))
    return f"{prefix}{number}{suffix}"


@st.composite
def occ_agg_strategy(draw) -> OccAggLimitValue:
    per_occurrence = draw(st.integers(min_value=0, max_value=100_000_000))
    aggregate = draw(st.integers(min_value=per_occurrence, max_value=200_000_000))
    return OccAggLimitValue(per_occurrence=per_occurrence, aggregate=aggregate)


def _option(option_id: str, value, label=None) -> CoverageLimitOption:
    return CoverageLimitOption(id=option_id, label=label, value=value)


# =============================================================================
# AMOUNTS AND DISPLAY
# =============================================================================


@settings(max_examples=200)
@given(text=shorthand_strategy())
def test_parse_format_parse_is_stable(text):
    parsed = parse_shorthand_amount(text)
    assert parsed >= 0
    assert parse_shorthand_amount(format_currency(parsed)) == parsed


@given(amount=amount_strategy)
def test_format_then_parse_returns_amount(amount):
    assert parse_shorthand_amount(format_currency(amount)) == amount


@given(value=occ_agg_strategy())
def test_display_value_is_deterministic(value):
    assert generate_display_value(value) == generate_display_value(value.model_copy(deep=True))


@given(thousands=st.lists(st.integers(min_value=1, max_value=9_999), min_size=3, max_size=3))
def test_split_display_parses_back_to_same_amounts(thousands):
    value = SplitLimitValue(components=[
        SplitLimitComponent(key=t.key, label=t.label, amount=k * 1000, order=t.order)
        for t, k in zip(AUTO_LIABILITY_SPLIT, thousands)
    ])
    legacy = LegacyLimit(limit_type=LegacyLimitType.SPLIT, display_value=generate_display_value(value))

    parsed = convert_legacy_to_option_value([legacy], LimitStructure.SPLIT)

    assert [c.amount for c in parsed.ordered_components()] == [k * 1000 for k in thousands]


# =============================================================================
# VALIDATION AND DUPLICATES
# =============================================================================


@given(
    per_occurrence=st.integers(min_value=0, max_value=100_000_000),
    delta=st.integers(min_value=-100_000_000, max_value=100_000_000),
)
def test_aggregate_must_not_be_below_per_occurrence(per_occurrence, delta):
    aggregate = per_occurrence + delta
    option = _option("a", OccAggLimitValue(per_occurrence=per_occurrence, aggregate=aggregate))

    result = validate_limit_option(option)

    assert result.valid == (aggregate >= per_occurrence >= 0 and aggregate >= 0)


@given(value=occ_agg_strategy(), labels=st.tuples(st.text(max_size=10), st.text(max_size=10)))
def test_same_values_with_different_labels_are_duplicates(value, labels):
    existing = _option("a", value, label=labels[0])
    candidate = _option("b", value.model_copy(), label=labels[1])

    assert not validate_limit_option(candidate, [existing]).valid


@given(value=occ_agg_strategy(), bump=st.integers(min_value=1, max_value=1_000_000))
def test_different_aggregate_is_not_a_duplicate(value, bump):
    existing = _option("a", value)
    candidate = _option("b", value.model_copy(update={"aggregate": value.aggregate + bump}))

    assert validate_limit_option(candidate, [existing]).valid


@given(amounts=st.lists(st.integers(min_value=0, max_value=5), max_size=8))
def test_duplicate_pairs_match_pairwise_scan(amounts):
    options = [_option(str(i), SingleLimitValue(amount=a)) for i, a in enumerate(amounts)]

    expected = [
        (i, j)
        for i in range(len(options))
        for j in range(i + 1, len(options))
        if option_value_key(options[i].value) == option_value_key(options[j].value)
    ]

    assert find_duplicate_options(options) == expected


# =============================================================================
# MIGRATION
# =============================================================================


@given(value=occ_agg_strategy())
def test_occurrence_aggregate_pair_migrates_to_occ_agg(value):
    legacy = [
        LegacyLimit(id="l1", limit_type=LegacyLimitType.PER_OCCURRENCE, amount=value.per_occurrence),
        LegacyLimit(id="l2", limit_type=LegacyLimitType.AGGREGATE, amount=value.aggregate),
    ]

    result = build_migration_result(PRODUCT_ID, COVERAGE_ID, legacy)

    assert result.option_set.structure == LimitStructure.OCC_AGG
    [option] = result.options
    expected_aggregate = value.aggregate or value.per_occurrence * 2
    assert (option.value.per_occurrence, option.value.aggregate) == (value.per_occurrence, expected_aggregate)


# =============================================================================
# SERVICE INVARIANTS
# =============================================================================


async def _seed(count: int):
    store = InMemoryDocumentStore()
    service = LimitOptionService(store)
    set_id = await service.upsert_limit_option_set(
        PRODUCT_ID, COVERAGE_ID, LimitOptionSetInput(structure=LimitStructure.SINGLE)
    )
    ids = [
        await service.add_option(
            PRODUCT_ID, COVERAGE_ID, set_id, LimitOptionInput(value=SingleLimitValue(amount=(i + 1) * 1000))
        )
        for i in range(count)
    ]
    return store, service, set_id, ids


@settings(max_examples=30, deadline=None)
@given(data=st.data(), count=st.integers(min_value=1, max_value=6))
def test_reorder_assigns_dense_positions(data, count):
    async def scenario():
        _, service, set_id, ids = await _seed(count)
        ordered = data.draw(st.permutations(ids))

        await service.reorder_options(PRODUCT_ID, COVERAGE_ID, set_id, ordered)

        options = await service.get_limit_options(PRODUCT_ID, COVERAGE_ID, set_id)
        assert [o.id for o in options] == list(ordered)
        assert [o.display_order for o in options] == list(range(count))

    asyncio.run(scenario())


@settings(max_examples=30, deadline=None)
@given(data=st.data(), count=st.integers(min_value=1, max_value=6))
def test_set_default_is_single_and_idempotent(data, count):
    async def scenario():
        store, service, set_id, ids = await _seed(count)
        option_id = data.draw(st.sampled_from(ids))

        await service.set_default_option(PRODUCT_ID, COVERAGE_ID, set_id, option_id)
        commits = len(store.commits)
        assert await service.set_default_option(PRODUCT_ID, COVERAGE_ID, set_id, option_id) == 0
        assert len(store.commits) == commits

        options = await service.get_limit_options(PRODUCT_ID, COVERAGE_ID, set_id)
        assert [o.id for o in options if o.is_default] == [option_id]

    asyncio.run(scenario())
