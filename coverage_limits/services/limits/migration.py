"""Legacy limit migration.

Reconstructs a structured option set from the loosely typed documents in
``.../coverages/{coverageId}/limits`` and writes option sets back into that
shape for screens that still read it.

Inference is heuristic. Every decision that did not come from an explicit
type tag is reported as a warning on the ``LegacyMigrationResult`` so an
operator can correct the proposal before saving it.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from coverage_limits.core.exceptions import LimitValidationError
from coverage_limits.repositories.document_store import DocumentStore, WriteOp, join_path
from coverage_limits.repositories.limit_option_repository import (
    LimitOptionRepository,
    legacy_limits_path,
    option_set_path,
    options_path,
)
from coverage_limits.schemas.legacy import LegacyLimit, LegacyLimitType
from coverage_limits.schemas.limit_options import (
    AUTO_LIABILITY_SPLIT,
    ClaimAggLimitValue,
    CoverageLimitOption,
    CoverageLimitOptionSet,
    CSLLimitValue,
    CustomLimitValue,
    LegacyMigrationResult,
    LimitApplicability,
    LimitConstraints,
    LimitOptionValue,
    LimitStructure,
    OccAggLimitValue,
    ScheduledLimitValue,
    SingleLimitValue,
    SplitLimitComponent,
    SplitLimitValue,
    SublimitEntry,
    SublimitValue,
)
from coverage_limits.services.limits.amounts import parse_shorthand_amount, to_whole_dollars
from coverage_limits.services.limits.basis import get_default_basis_for_structure
from coverage_limits.services.limits.display import generate_display_value
from coverage_limits.services.limits.validation import find_duplicate_options, validate_limit_option
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)

SPLIT_DISPLAY_PATTERN = re.compile(r"^\d+/\d+/\d+$")
SPLIT_EXTRACT_PATTERN = re.compile(r"(\d+)/(\d+)/(\d+)")
DISPLAY_NOISE_PATTERN = re.compile(r"[$,\s]")

EMPTY_SET_NAME = "Primary Limits"
MIGRATED_SET_NAME = "Legacy Limits (Migrated)"
PROPOSAL_SET_ID = "primary"


@dataclass(frozen=True)
class StructureInference:
    """Inferred structure plus how it was decided."""

    structure: LimitStructure
    explicit: bool
    reason: str


def _has_split_display(limit: LegacyLimit) -> bool:
    if not limit.display_value:
        return False
    return bool(SPLIT_DISPLAY_PATTERN.match(DISPLAY_NOISE_PATTERN.sub("", limit.display_value)))


def _of_type(limits: Sequence[LegacyLimit], limit_type: LegacyLimitType) -> List[LegacyLimit]:
    return [limit for limit in limits if limit.limit_type == limit_type]


def infer_structure_with_evidence(limits: Sequence[LegacyLimit]) -> StructureInference:
    """Infer the structure of legacy limits, in priority order.

    1. split: an explicit ``split`` type, or a ``100/300/100`` display value
    2. occAgg: both ``perOccurrence`` and ``aggregate`` types present
    3. csl: any ``combined`` type
    4. single: any ``sublimit`` type (sublimits become a set-level flag)
    5. single otherwise
    """
    if not limits:
        return StructureInference(LimitStructure.SINGLE, explicit=False, reason="no legacy limits")

    if _of_type(limits, LegacyLimitType.SPLIT):
        return StructureInference(LimitStructure.SPLIT, explicit=True, reason="limitType 'split'")
    if any(_has_split_display(limit) for limit in limits):
        return StructureInference(LimitStructure.SPLIT, explicit=False, reason="split display pattern")

    if _of_type(limits, LegacyLimitType.PER_OCCURRENCE) and _of_type(limits, LegacyLimitType.AGGREGATE):
        return StructureInference(
            LimitStructure.OCC_AGG, explicit=True, reason="limitType 'perOccurrence' and 'aggregate'"
        )

    if _of_type(limits, LegacyLimitType.COMBINED):
        return StructureInference(LimitStructure.CSL, explicit=True, reason="limitType 'combined'")

    if _of_type(limits, LegacyLimitType.SUBLIMIT):
        return StructureInference(LimitStructure.SINGLE, explicit=True, reason="limitType 'sublimit'")

    return StructureInference(LimitStructure.SINGLE, explicit=False, reason="default")


def infer_structure_from_legacy(limits: Sequence[LegacyLimit]) -> LimitStructure:
    return infer_structure_with_evidence(limits).structure


def legacy_amount(limit: Optional[LegacyLimit]) -> int:
    """Whole-dollar amount of a legacy limit, read from its display value if unset."""
    if limit is None:
        return 0
    if limit.amount is not None:
        return max(to_whole_dollars(limit.amount), 0)
    return parse_shorthand_amount(limit.display_value or "")


def _split_from_display(display_value: Optional[str]) -> Optional[SplitLimitValue]:
    match = SPLIT_EXTRACT_PATTERN.search(DISPLAY_NOISE_PATTERN.sub("", display_value or ""))
    if not match:
        return None
    return SplitLimitValue(components=[
        SplitLimitComponent(
            key=template.key,
            label=template.label,
            amount=int(group) * 1000,
            order=template.order,
        )
        for template, group in zip(AUTO_LIABILITY_SPLIT, match.groups())
    ])


def convert_legacy_to_option_value(
    limits: Sequence[LegacyLimit],
    structure: LimitStructure,
) -> LimitOptionValue:
    """Build one value of ``structure`` from the first matching legacy record(s).

    A split display that cannot be parsed falls back to a single limit using
    the first record's amount.
    """
    primary = limits[0] if limits else None
    structure = LimitStructure(structure)

    if structure == LimitStructure.OCC_AGG:
        occurrence = next(iter(_of_type(limits, LegacyLimitType.PER_OCCURRENCE)), None)
        aggregate = next(iter(_of_type(limits, LegacyLimitType.AGGREGATE)), None)
        return OccAggLimitValue(per_occurrence=legacy_amount(occurrence), aggregate=legacy_amount(aggregate))

    if structure == LimitStructure.CSL:
        return CSLLimitValue(amount=legacy_amount(primary))

    if structure == LimitStructure.SPLIT:
        split = _split_from_display(primary.display_value if primary else None)
        if split is not None:
            return split
        return SingleLimitValue(amount=legacy_amount(primary))

    # single, and the retired sublimit structure
    return SingleLimitValue(amount=legacy_amount(primary))


def _applicability(limit: LegacyLimit) -> Optional[LimitApplicability]:
    if not limit.states:
        return None
    return LimitApplicability(states=list(limit.states))


def _constraints(limit: LegacyLimit) -> Optional[LimitConstraints]:
    if not limit.min_amount and not limit.max_amount:
        return None
    return LimitConstraints(
        min=to_whole_dollars(limit.min_amount) if limit.min_amount is not None else None,
        max=to_whole_dollars(limit.max_amount) if limit.max_amount is not None else None,
    )


def _sublimit_entry(limit: LegacyLimit, index: int) -> SublimitEntry:
    applies_to = ", ".join(limit.applies_to or []) or limit.description or "General"
    amount = legacy_amount(limit)
    return SublimitEntry(
        id=f"sublimit-{index}",
        label=limit.display_value or generate_display_value(SingleLimitValue(amount=amount)),
        amount=amount,
        applies_to=applies_to,
        peril_tag=(limit.applies_to or [None])[0],
        is_enabled=True,
        display_order=index,
    )


def _build_option(
    index: int,
    value: LimitOptionValue,
    source: LegacyLimit,
    label: Optional[str] = None,
) -> CoverageLimitOption:
    display_value = generate_display_value(value)
    return CoverageLimitOption(
        id=f"opt-{index}",
        label=label or display_value,
        display_value=display_value,
        is_default=bool(source.is_default),
        is_enabled=True,
        display_order=index,
        applicability=_applicability(source),
        constraints=_constraints(source),
        value=value,
    )


def empty_migration_result(product_id: str, coverage_id: str) -> LegacyMigrationResult:
    option_set = CoverageLimitOptionSet(
        id=PROPOSAL_SET_ID,
        product_id=product_id,
        coverage_id=coverage_id,
        structure=LimitStructure.SINGLE,
        name=EMPTY_SET_NAME,
        selection_mode="single",
        is_required=False,
    )
    return LegacyMigrationResult(option_set=option_set, options=[], warnings=[], structure_inferred=False)


def build_migration_result(
    product_id: str,
    coverage_id: str,
    legacy_limits: Sequence[LegacyLimit],
) -> LegacyMigrationResult:
    """Turn legacy limits into an unpersisted option set proposal.

    Args:
        product_id: Product owning the coverage
        coverage_id: Coverage whose limits are migrated
        legacy_limits: Legacy limit records

    Returns:
        LegacyMigrationResult: Proposal with warnings for anything needing review
    """
    if not legacy_limits:
        return empty_migration_result(product_id, coverage_id)

    warnings: List[str] = []
    inference = infer_structure_with_evidence(legacy_limits)
    structure = inference.structure
    options: List[CoverageLimitOption] = []

    sublimit_records = _of_type(legacy_limits, LegacyLimitType.SUBLIMIT)
    had_sublimits = bool(sublimit_records)
    sublimit_entries: List[SublimitEntry] = []

    if structure == LimitStructure.OCC_AGG:
        occurrences = _of_type(legacy_limits, LegacyLimitType.PER_OCCURRENCE)
        aggregates = _of_type(legacy_limits, LegacyLimitType.AGGREGATE)
        if len(occurrences) != len(aggregates):
            warnings.append(
                f"Legacy data has {len(occurrences)} per-occurrence and {len(aggregates)} aggregate limit(s). "
                "Pairs were matched by position; unmatched per-occurrence limits use the first aggregate. "
                "Review the pairings before saving."
            )
        doubled = 0
        for index, occurrence in enumerate(occurrences):
            matching = aggregates[index] if index < len(aggregates) else aggregates[0]
            per_occurrence = legacy_amount(occurrence)
            aggregate = legacy_amount(matching)
            if not aggregate:
                aggregate = per_occurrence * 2
                doubled += 1
            value = OccAggLimitValue(per_occurrence=per_occurrence, aggregate=aggregate)
            options.append(_build_option(index, value, occurrence))

        if doubled:
            warnings.append(
                f"{doubled} option(s) had no aggregate amount; aggregate set to twice the per-occurrence limit"
            )

        skipped = len(legacy_limits) - len(occurrences) - len(aggregates)
        if skipped:
            warnings.append(
                f"{skipped} legacy limit(s) of other types were not included in the occurrence/aggregate options"
            )
    else:
        records = list(legacy_limits)
        if had_sublimits and len(sublimit_records) < len(records):
            # Sublimits become set-level entries, not selectable primary limits
            records = [r for r in records if r.limit_type != LegacyLimitType.SUBLIMIT]
            sublimit_entries = [_sublimit_entry(r, i) for i, r in enumerate(sublimit_records)]

        unparsed_splits = 0
        for index, limit in enumerate(records):
            value = convert_legacy_to_option_value([limit], structure)
            if value.structure != structure.value:
                unparsed_splits += 1
            options.append(_build_option(index, value, limit, label=limit.display_value))

        if unparsed_splits:
            warnings.append(
                f"{unparsed_splits} legacy limit(s) had no parseable split notation and were "
                "migrated as single limits; edit them before saving"
            )

    if had_sublimits:
        warnings.append(
            "Legacy sublimit structure detected. Migrated to single + sublimitsEnabled=true"
        )

    if inference.structure == LimitStructure.SPLIT and not inference.explicit:
        warnings.append(
            "Split structure was inferred from a numeric display pattern (e.g. 100/300/100) "
            "rather than an explicit limit type; verify the components before saving"
        )

    defaults = [o for o in options if o.is_default]
    if len(defaults) > 1:
        for option in defaults[1:]:
            option.is_default = False
        warnings.append(
            f"Legacy data marked {len(defaults)} limits as default; only '{defaults[0].label}' was kept"
        )

    duplicates = find_duplicate_options(options)
    if duplicates:
        labels = ", ".join(f"'{options[j].label}'" for _, j in duplicates)
        warnings.append(f"Duplicate limit values after migration: {labels}")

    option_set = CoverageLimitOptionSet(
        id=PROPOSAL_SET_ID,
        product_id=product_id,
        coverage_id=coverage_id,
        structure=structure,
        name=MIGRATED_SET_NAME,
        selection_mode="single",
        is_required=any(limit.is_required for limit in legacy_limits),
        split_components=list(AUTO_LIABILITY_SPLIT) if structure == LimitStructure.SPLIT else None,
        basis_config=get_default_basis_for_structure(structure),
        sublimits_enabled=had_sublimits,
        sublimits=sublimit_entries or None,
    )

    return LegacyMigrationResult(
        option_set=option_set,
        options=options,
        warnings=warnings,
        structure_inferred=True,
    )


def legacy_limit_from_option(
    option: CoverageLimitOption,
    option_set: CoverageLimitOptionSet,
    product_id: str,
    coverage_id: str,
) -> LegacyLimit:
    """Project an option back onto the legacy record shape.

    Lossy for split limits: the legacy format holds one amount, so only the
    first component survives (the display value keeps the full notation).
    """
    value = option.value
    applies_to = None

    if isinstance(value, SingleLimitValue):
        limit_type, amount = LegacyLimitType.PER_OCCURRENCE, value.amount
    elif isinstance(value, CSLLimitValue):
        limit_type, amount = LegacyLimitType.COMBINED, value.amount
    elif isinstance(value, OccAggLimitValue):
        limit_type, amount = LegacyLimitType.PER_OCCURRENCE, value.per_occurrence
    elif isinstance(value, ClaimAggLimitValue):
        limit_type, amount = LegacyLimitType.PER_OCCURRENCE, value.per_claim
    elif isinstance(value, SublimitValue):
        limit_type, amount = LegacyLimitType.SUBLIMIT, value.amount
        applies_to = [value.sublimit_tag] if value.sublimit_tag else None
    elif isinstance(value, SplitLimitValue):
        components = value.ordered_components()
        limit_type, amount = LegacyLimitType.SPLIT, components[0].amount if components else 0
    elif isinstance(value, ScheduledLimitValue):
        limit_type, amount = LegacyLimitType.PER_OCCURRENCE, value.total_cap or value.per_item_max or 0
    elif isinstance(value, CustomLimitValue):
        limit_type, amount = LegacyLimitType.PER_OCCURRENCE, 0
    else:
        raise TypeError(f"Unsupported limit value: {type(value).__name__}")

    return LegacyLimit(
        product_id=product_id,
        coverage_id=coverage_id,
        limit_type=limit_type,
        amount=amount or 0,
        display_value=option.display_value or option.label,
        applies_to=applies_to,
        is_default=option.is_default,
        is_required=option_set.is_required,
        states=option.applicability.states if option.applicability else None,
        min_amount=option.constraints.min if option.constraints else None,
        max_amount=option.constraints.max if option.constraints else None,
    )


class LegacyMigrationService:
    """Runs legacy migration proposals, commits them and syncs back."""

    def __init__(self, store: DocumentStore, repository: Optional[LimitOptionRepository] = None):
        self.store = store
        self.repository = repository or LimitOptionRepository(store)
        self.logger = LOGGER

    async def migrate_legacy_limits_to_option_set(
        self, product_id: str, coverage_id: str
    ) -> LegacyMigrationResult:
        """Read legacy limits and propose an option set; writes nothing."""
        legacy_limits = await self.repository.get_legacy_limits(product_id, coverage_id)
        result = build_migration_result(product_id, coverage_id, legacy_limits)

        self.logger.info(
            f"Proposed migration of {len(legacy_limits)} legacy limit(s) for coverage {coverage_id}",
            extra={
                "product_id": product_id,
                "coverage_id": coverage_id,
                "structure": result.option_set.structure.value,
                "warnings": len(result.warnings),
            },
        )
        for warning in result.warnings:
            self.logger.warning(f"Migration warning for coverage {coverage_id}: {warning}")

        return result

    async def save_migrated_option_set(
        self, product_id: str, coverage_id: str, result: LegacyMigrationResult
    ) -> str:
        """Commit a proposal as one batch under fresh ids.

        Returns:
            str: Id of the created option set

        Raises:
            LimitValidationError: If any proposed option has invalid values, does
                not fit the proposed set, repeats another option's value, or a
                single-select set has more than one default
        """
        errors: List[str] = []
        for option in result.options:
            validation = validate_limit_option(option, option_set=result.option_set)
            errors.extend(f"{option.label}: {message}" for message in validation.errors)

        for duplicate in sorted({j for _, j in find_duplicate_options(result.options)}):
            errors.append(f"{result.options[duplicate].label}: This limit option already exists")

        defaults = [o for o in result.options if o.is_default]
        if result.option_set.selection_mode == "single" and len(defaults) > 1:
            errors.append(
                f"Only one default is allowed; {len(defaults)} options are marked default "
                f"({', '.join(repr(o.label) for o in defaults)})"
            )
        if errors:
            raise LimitValidationError(errors, "Migrated options are invalid; correct them before saving")

        now = datetime.now(timezone.utc)
        set_id = self.store.new_id()
        option_set = result.option_set.model_copy(update={
            "id": set_id,
            "product_id": product_id,
            "coverage_id": coverage_id,
            "created_at": now,
            "updated_at": now,
        })

        ops = [WriteOp.set(option_set_path(product_id, coverage_id, set_id), option_set.to_document())]
        collection = options_path(product_id, coverage_id, set_id)
        for index, option in enumerate(sorted(result.options, key=lambda o: o.display_order)):
            saved = option.model_copy(update={
                "display_order": index,
                "display_value": generate_display_value(option.value),
                "created_at": now,
                "updated_at": now,
            })
            ops.append(WriteOp.set(join_path(collection, self.store.new_id()), saved.to_document()))

        await self.store.batch_write(ops)
        self.logger.info(
            f"Saved migrated option set {set_id} with {len(result.options)} option(s)",
            extra={"product_id": product_id, "coverage_id": coverage_id},
        )
        return set_id

    async def sync_to_legacy_limits(self, product_id: str, coverage_id: str, set_id: str) -> int:
        """Regenerate the legacy limits collection from an option set.

        Returns:
            int: Number of legacy records written (0 when the set is missing)
        """
        option_set = await self.repository.get_option_set(product_id, coverage_id, set_id)
        if option_set is None:
            self.logger.warning(f"Option set {set_id} not found; nothing synced to legacy limits")
            return 0
        options = await self.repository.get_options(product_id, coverage_id, set_id)

        legacy_collection = legacy_limits_path(product_id, coverage_id)
        existing = await self.store.list(legacy_collection)
        ops = [WriteOp.delete(doc.path) for doc in existing]

        now = datetime.now(timezone.utc)
        for option in options:
            doc_id = self.store.new_id()
            legacy = legacy_limit_from_option(option, option_set, product_id, coverage_id)
            legacy = legacy.model_copy(update={"id": doc_id, "created_at": now, "updated_at": now})
            ops.append(WriteOp.set(join_path(legacy_collection, doc_id), legacy.to_document()))

        await self.store.batch_write(ops)
        self.logger.info(
            f"Synced {len(options)} option(s) to legacy limits, replacing {len(existing)} record(s)",
            extra={"product_id": product_id, "coverage_id": coverage_id, "set_id": set_id},
        )
        return len(options)

