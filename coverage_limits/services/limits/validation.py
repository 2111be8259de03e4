"""Validation and duplicate detection for limit options and option sets.

Two layers:

* ``validate_limit_option`` checks one option's value fields and rejects values
  duplicating another option in the set. The option service runs it before
  every write.
* ``validate_limit_option_set`` checks a whole set in ``draft`` or ``publish``
  mode and returns coded errors and warnings for editors.
"""

from collections import defaultdict
from typing import Any, Dict, Hashable, List, Literal, Optional, Sequence, Tuple

from coverage_limits.schemas.limit_options import (
    ClaimAggLimitValue,
    CoverageLimitOption,
    CoverageLimitOptionSet,
    CSLLimitValue,
    CustomLimitValue,
    LimitBasis,
    LimitBasisConfig,
    LimitOptionSetValidationResult,
    LimitOptionValue,
    LimitStructure,
    LimitValidationIssue,
    OccAggLimitValue,
    OptionValidationResult,
    ScheduledLimitValue,
    SingleLimitValue,
    SplitLimitValue,
    SublimitValue,
)
from coverage_limits.services.limits.amounts import format_currency

ValidationMode = Literal["draft", "publish"]


def validate_aggregate_primary(primary: int, aggregate: int) -> Tuple[bool, Optional[str]]:
    """Check that an aggregate is not below its per-occurrence or per-claim limit."""
    if aggregate < primary:
        return False, "Aggregate must be greater than or equal to the primary limit"
    return True, None


def _is_missing_or_negative(amount: Optional[int]) -> bool:
    return amount is None or amount < 0


# ============================================================================
# Duplicate detection
# ============================================================================


def option_value_key(value: LimitOptionValue) -> Hashable:
    """Key identifying a value by structure and value fields only.

    Label, ordering, applicability, ids and flags never take part, so two
    options with equal keys are duplicates.
    """
    if isinstance(value, (SingleLimitValue, CSLLimitValue)):
        return (value.structure, value.amount)
    if isinstance(value, OccAggLimitValue):
        return (value.structure, value.per_occurrence, value.aggregate)
    if isinstance(value, ClaimAggLimitValue):
        return (value.structure, value.per_claim, value.aggregate)
    if isinstance(value, SplitLimitValue):
        return (value.structure, tuple(c.amount for c in value.ordered_components()))
    if isinstance(value, SublimitValue):
        return (value.structure, value.amount, value.sublimit_tag)
    if isinstance(value, ScheduledLimitValue):
        return (value.structure, value.per_item_min, value.per_item_max, value.total_cap)
    if isinstance(value, CustomLimitValue):
        return (
            value.structure,
            value.description,
            tuple(sorted(((k, str(v)) for k, v in value.values.items()))),
        )
    raise TypeError(f"Unsupported limit value: {type(value).__name__}")


def are_options_equal(a: CoverageLimitOption, b: CoverageLimitOption) -> bool:
    return option_value_key(a.value) == option_value_key(b.value)


def find_duplicate_options(options: Sequence[CoverageLimitOption]) -> List[Tuple[int, int]]:
    """Return index pairs ``(i, j)``, ``i < j``, of options with equal values.

    Options are grouped by value key, then every pair inside a group is
    reported, in the same order a pairwise scan would report them.
    """
    groups: Dict[Hashable, List[int]] = defaultdict(list)
    for index, option in enumerate(options):
        groups[option_value_key(option.value)].append(index)

    duplicates: List[Tuple[int, int]] = []
    for indices in groups.values():
        for pos, i in enumerate(indices):
            for j in indices[pos + 1:]:
                duplicates.append((i, j))

    return sorted(duplicates)


# ============================================================================
# Single option validation
# ============================================================================


def _value_errors(value: LimitOptionValue) -> List[str]:
    errors: List[str] = []

    if isinstance(value, (SingleLimitValue, CSLLimitValue, SublimitValue)):
        if _is_missing_or_negative(value.amount):
            errors.append("Amount must be a non-negative number")

    elif isinstance(value, OccAggLimitValue):
        if _is_missing_or_negative(value.per_occurrence):
            errors.append("Per Occurrence must be a non-negative number")
        if _is_missing_or_negative(value.aggregate):
            errors.append("Aggregate must be a non-negative number")
        if value.per_occurrence is not None and value.aggregate is not None:
            if not validate_aggregate_primary(value.per_occurrence, value.aggregate)[0]:
                errors.append("Aggregate must be >= Per Occurrence")

    elif isinstance(value, ClaimAggLimitValue):
        if _is_missing_or_negative(value.per_claim):
            errors.append("Per Claim must be a non-negative number")
        if _is_missing_or_negative(value.aggregate):
            errors.append("Aggregate must be a non-negative number")
        if value.per_claim is not None and value.aggregate is not None:
            if not validate_aggregate_primary(value.per_claim, value.aggregate)[0]:
                errors.append("Aggregate must be >= Per Claim")

    elif isinstance(value, SplitLimitValue):
        if not value.components:
            errors.append("Split limit requires component values")
        keys = [c.key for c in value.components]
        if len(keys) != len(set(keys)):
            errors.append("Split limit component keys must be unique")
        for component in value.ordered_components():
            if _is_missing_or_negative(component.amount):
                errors.append(f"{component.label} must be a non-negative number")

    elif isinstance(value, ScheduledLimitValue):
        for label, amount in (
            ("Per item minimum", value.per_item_min),
            ("Per item maximum", value.per_item_max),
            ("Total cap", value.total_cap),
        ):
            if amount is not None and amount < 0:
                errors.append(f"{label} must be a non-negative number")
        if (
            value.per_item_min is not None
            and value.per_item_max is not None
            and value.per_item_min > value.per_item_max
        ):
            errors.append("Per item minimum must be <= per item maximum")

    return errors


def _set_shape_errors(option: CoverageLimitOption, option_set: CoverageLimitOptionSet) -> List[str]:
    errors: List[str] = []
    if option.structure != option_set.structure:
        errors.append(
            f"Option structure '{option.structure.value}' does not match "
            f"option set structure '{option_set.structure.value}'"
        )
    elif isinstance(option.value, SplitLimitValue) and option_set.split_components:
        expected = {c.key for c in option_set.split_components}
        actual = {c.key for c in option.value.components}
        if expected != actual:
            errors.append(
                f"Split components must use keys {sorted(expected)}, got {sorted(actual)}"
            )
    return errors


def validate_limit_option(
    option: CoverageLimitOption,
    existing_options: Sequence[CoverageLimitOption] = (),
    option_set: Optional[CoverageLimitOptionSet] = None,
) -> OptionValidationResult:
    """Validate an option before it is saved.

    Args:
        option: Option to validate
        existing_options: Options already in the set; the option itself (same
            id) is skipped when checking for duplicates
        option_set: Owning set, when known, to check structure and split keys

    Returns:
        OptionValidationResult: ``valid`` plus human-readable errors
    """
    errors = _value_errors(option.value)

    if option_set is not None:
        errors.extend(_set_shape_errors(option, option_set))

    key = option_value_key(option.value)
    for existing in existing_options:
        if option.id is not None and existing.id == option.id:
            continue
        if option_value_key(existing.value) == key:
            errors.append("This limit option already exists")
            break

    return OptionValidationResult(valid=not errors, errors=errors)


# ============================================================================
# Option set validation (draft / publish)
# ============================================================================


def _primary_amount(option: CoverageLimitOption) -> Optional[int]:
    value = option.value
    if isinstance(value, (SingleLimitValue, CSLLimitValue, SublimitValue)):
        return value.amount
    if isinstance(value, OccAggLimitValue):
        return value.per_occurrence
    if isinstance(value, ClaimAggLimitValue):
        return value.per_claim
    return None


def validate_option_fields(
    option: CoverageLimitOption,
    structure: LimitStructure,
    mode: ValidationMode = "draft",
) -> List[LimitValidationIssue]:
    """Coded per-option checks used by ``validate_limit_option_set``."""
    errors: List[LimitValidationIssue] = []
    value = option.value
    publish = mode == "publish"

    if option.structure != structure:
        errors.append(LimitValidationIssue(
            field="structure",
            message=f"Option structure '{option.structure.value}' does not match set structure '{LimitStructure(structure).value}'",
            code="STRUCTURE_MISMATCH",
        ))
        return errors

    if isinstance(value, (SingleLimitValue, CSLLimitValue, SublimitValue)):
        if publish and not value.amount:
            errors.append(LimitValidationIssue(
                field="amount", message="Limit amount must be greater than 0", code="INVALID_AMOUNT",
            ))
        elif value.amount is not None and value.amount < 0:
            errors.append(LimitValidationIssue(
                field="amount", message="Limit amount cannot be negative", code="INVALID_AMOUNT",
            ))

    elif isinstance(value, (OccAggLimitValue, ClaimAggLimitValue)):
        primary_field, primary_label, primary = (
            ("perOccurrence", "Per occurrence", value.per_occurrence)
            if isinstance(value, OccAggLimitValue)
            else ("perClaim", "Per claim", value.per_claim)
        )
        if publish and not primary:
            errors.append(LimitValidationIssue(
                field=primary_field, message=f"{primary_label} limit must be greater than 0", code="INVALID_AMOUNT",
            ))
        if publish and not value.aggregate:
            errors.append(LimitValidationIssue(
                field="aggregate", message="Aggregate limit must be greater than 0", code="INVALID_AMOUNT",
            ))
        if primary is not None and value.aggregate is not None and primary > value.aggregate:
            errors.append(LimitValidationIssue(
                field="aggregate",
                message=f"Aggregate should be greater than or equal to {primary_label.lower()}",
                code="INVALID_RATIO",
            ))

    elif isinstance(value, SplitLimitValue):
        if publish and not value.components:
            errors.append(LimitValidationIssue(
                field="components", message="Split limit requires component values", code="MISSING_COMPONENTS",
            ))

    if option.constraints:
        amount = _primary_amount(option)
        minimum, maximum = option.constraints.min, option.constraints.max
        if minimum is not None and amount is not None and amount < minimum:
            errors.append(LimitValidationIssue(
                field="amount", message=f"Amount must be at least {format_currency(minimum)}", code="BELOW_MIN",
            ))
        if maximum is not None and amount is not None and amount > maximum:
            errors.append(LimitValidationIssue(
                field="amount", message=f"Amount must not exceed {format_currency(maximum)}", code="ABOVE_MAX",
            ))

    return errors


def validate_basis_config(
    basis_config: Optional[LimitBasisConfig],
    structure: LimitStructure,
    mode: ValidationMode = "draft",
) -> List[LimitValidationIssue]:
    """Validate the basis configuration of a set."""
    errors: List[LimitValidationIssue] = []
    structure = LimitStructure(structure)
    publish = mode == "publish"

    if publish and structure != LimitStructure.CUSTOM:
        if not basis_config or not basis_config.primary_basis:
            errors.append(LimitValidationIssue(
                field="basisConfig.primaryBasis", message="Limit basis must be selected", code="REQUIRED_FIELD",
            ))
            return errors

    if not basis_config:
        return errors

    if LimitBasis.OTHER in (basis_config.primary_basis, basis_config.aggregate_basis):
        if not (basis_config.custom_basis_description or "").strip():
            errors.append(LimitValidationIssue(
                field="basisConfig.customBasisDescription",
                message='Custom basis description is required when "Other" is selected',
                code="REQUIRED_FIELD",
            ))

    if publish and structure in (LimitStructure.OCC_AGG, LimitStructure.CLAIM_AGG):
        if not basis_config.aggregate_basis:
            errors.append(LimitValidationIssue(
                field="basisConfig.aggregateBasis",
                message="Aggregate basis must be selected for this structure",
                code="REQUIRED_FIELD",
            ))

    if publish and structure == LimitStructure.SCHEDULED and not basis_config.item_basis:
        errors.append(LimitValidationIssue(
            field="basisConfig.itemBasis",
            message="Item basis must be selected for scheduled limits",
            code="REQUIRED_FIELD",
        ))

    return errors


def validate_limit_option_set(
    option_set: CoverageLimitOptionSet,
    options: Sequence[CoverageLimitOption],
    mode: ValidationMode = "draft",
) -> LimitOptionSetValidationResult:
    """Validate a set with its options.

    Args:
        option_set: The option set
        options: Options belonging to the set
        mode: ``draft`` tolerates incomplete data; ``publish`` requires a
            complete, selectable configuration

    Returns:
        LimitOptionSetValidationResult: Coded errors and warnings
    """
    errors: List[LimitValidationIssue] = []
    warnings: List[LimitValidationIssue] = []

    if not (option_set.name or "").strip():
        errors.append(LimitValidationIssue(
            field="name", message="Option set name is required", code="REQUIRED_FIELD",
        ))

    if option_set.structure == LimitStructure.SPLIT and not option_set.split_components:
        errors.append(LimitValidationIssue(
            field="splitComponents",
            message="Split limit structure requires component definitions",
            code="MISSING_SPLIT_COMPONENTS",
        ))

    if option_set.structure != LimitStructure.CUSTOM:
        errors.extend(validate_basis_config(option_set.basis_config, option_set.structure, mode))

    if mode == "publish" and not options:
        errors.append(LimitValidationIssue(
            field="options", message="At least one limit option is required for publishing", code="NO_OPTIONS",
        ))

    expected_keys = {c.key for c in option_set.split_components or []}
    for index, option in enumerate(options):
        for issue in validate_option_fields(option, option_set.structure, mode):
            errors.append(issue.model_copy(update={
                "option_id": option.id,
                "field": f"options[{index}].{issue.field}",
            }))
        if expected_keys and isinstance(option.value, SplitLimitValue):
            if {c.key for c in option.value.components} != expected_keys:
                errors.append(LimitValidationIssue(
                    field=f"options[{index}].components",
                    option_id=option.id,
                    message="Split components do not match the option set's component keys",
                    code="SPLIT_KEY_MISMATCH",
                ))

    default_count = sum(1 for o in options if o.is_default)
    if default_count > 1 and option_set.selection_mode == "single":
        errors.append(LimitValidationIssue(
            field="options", message="Single-select option sets can only have one default", code="MULTIPLE_DEFAULTS",
        ))
    if option_set.is_required and mode == "publish" and default_count == 0:
        warnings.append(LimitValidationIssue(
            field="options", message="Required option sets should have a default selection", code="NO_DEFAULT",
        ))

    display_values = [o.display_value or o.label for o in options if o.display_value or o.label]
    seen: Dict[Any, int] = {}
    repeated: List[str] = []
    for display in display_values:
        seen[display] = seen.get(display, 0) + 1
        if seen[display] == 2:
            repeated.append(str(display))
    if repeated:
        warnings.append(LimitValidationIssue(
            field="options",
            message=f"Duplicate display values found: {', '.join(repeated)}",
            code="DUPLICATE_VALUES",
        ))

    return LimitOptionSetValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def is_ready_to_publish(
    option_set: CoverageLimitOptionSet,
    options: Sequence[CoverageLimitOption],
) -> bool:
    return validate_limit_option_set(option_set, options, "publish").is_valid


def get_validation_summary(result: LimitOptionSetValidationResult) -> Dict[str, str]:
    """Collapse a validation result into one ``{type, message}`` banner."""
    if result.errors:
        count = len(result.errors)
        return {"type": "error", "message": f"{count} error{'s' if count > 1 else ''} found"}
    if result.warnings:
        count = len(result.warnings)
        return {"type": "warning", "message": f"{count} warning{'s' if count > 1 else ''}"}
    return {"type": "success", "message": "Valid"}
