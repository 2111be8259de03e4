"""Option set and option persistence.

Every multi-document change is committed as one ``batch_write`` so the
single-default and dense-ordering invariants never appear half-applied to
subscribers.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from coverage_limits.core.exceptions import (
    InvalidReorderError,
    LimitValidationError,
    NotFoundError,
    StructureChangeError,
)
from coverage_limits.repositories.document_store import DocumentStore, WriteOp
from coverage_limits.repositories.limit_option_repository import (
    LimitOptionRepository,
    option_path,
    option_set_path,
)
from coverage_limits.schemas.limit_options import (
    CoverageLimitOption,
    CoverageLimitOptionSet,
    LimitOptionInput,
    LimitOptionSetInput,
    LimitOptionSetValidationResult,
    LimitOptionSetWithOptions,
    LimitStructure,
)
from coverage_limits.services.limits.basis import ensure_basis_config
from coverage_limits.services.limits.display import generate_display_value
from coverage_limits.services.limits.templates import (
    generate_options_from_template,
    get_split_components_for_template,
    get_template_by_id,
)
from coverage_limits.services.limits.validation import (
    ValidationMode,
    option_value_key,
    validate_limit_option,
    validate_limit_option_set,
)
from coverage_limits.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _supplied_fields(data: Any) -> Dict[str, Any]:
    """Fields explicitly set on a partial input, without ``id`` or ``None`` values."""
    return {
        name: getattr(data, name)
        for name in data.model_fields_set
        if name != "id" and getattr(data, name) is not None
    }


def next_display_order(options: Sequence[CoverageLimitOption]) -> int:
    """Order for an appended option: one past the current maximum, 0 when empty."""
    if not options:
        return 0
    return max(o.display_order for o in options) + 1


def visible_options(
    option_set: CoverageLimitOptionSet,
    options: Sequence[CoverageLimitOption],
) -> List[CoverageLimitOption]:
    """Options shaped like their set; orphans left by a structure change are hidden."""
    return [o for o in options if o.structure == option_set.structure]


class LimitOptionService:
    """CRUD protocol for coverage limit option sets and their options."""

    def __init__(self, store: DocumentStore, repository: Optional[LimitOptionRepository] = None):
        """Initialize the service.

        Args:
            store: Document store holding product data
            repository: Optional repository; built over ``store`` when omitted
        """
        self.store = store
        self.repository = repository or LimitOptionRepository(store)
        self.logger = LOGGER

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_limit_option_sets(self, product_id: str, coverage_id: str) -> List[CoverageLimitOptionSet]:
        option_sets = await self.repository.get_option_sets(product_id, coverage_id)
        return [ensure_basis_config(s) for s in option_sets]

    async def get_limit_option_set_with_options(
        self, product_id: str, coverage_id: str, set_id: str
    ) -> Optional[LimitOptionSetWithOptions]:
        option_set = await self.repository.get_option_set(product_id, coverage_id, set_id)
        if option_set is None:
            return None
        options = await self.repository.get_options(product_id, coverage_id, set_id)
        return LimitOptionSetWithOptions(option_set=ensure_basis_config(option_set), options=options)

    async def get_limit_options(self, product_id: str, coverage_id: str, set_id: str) -> List[CoverageLimitOption]:
        return await self.repository.get_options(product_id, coverage_id, set_id)

    async def has_legacy_limits(self, product_id: str, coverage_id: str) -> bool:
        return await self.repository.has_legacy_limits(product_id, coverage_id)

    async def validate_option_set(
        self, product_id: str, coverage_id: str, set_id: str, mode: ValidationMode = "draft"
    ) -> LimitOptionSetValidationResult:
        loaded = await self._require_set_with_options(product_id, coverage_id, set_id)
        return validate_limit_option_set(loaded.option_set, loaded.options, mode)

    async def _require_set_with_options(
        self, product_id: str, coverage_id: str, set_id: str
    ) -> LimitOptionSetWithOptions:
        loaded = await self.get_limit_option_set_with_options(product_id, coverage_id, set_id)
        if loaded is None:
            raise NotFoundError("Option set", set_id)
        return loaded

    # ------------------------------------------------------------------
    # Option sets
    # ------------------------------------------------------------------

    async def upsert_limit_option_set(
        self,
        product_id: str,
        coverage_id: str,
        data: LimitOptionSetInput,
        confirm_structure_change: bool = False,
    ) -> str:
        """Create an option set, or partially update it when ``data.id`` exists.

        Args:
            product_id: Product owning the coverage
            coverage_id: Coverage owning the set
            data: Fields to write; unset fields are left untouched
            confirm_structure_change: Required to change the structure of a
                set whose options use the current structure

        Returns:
            str: Id of the written option set

        Raises:
            StructureChangeError: Structure changed without confirmation
            LimitValidationError: Inserting without a structure
        """
        fields = _supplied_fields(data)
        now = _utcnow()

        existing = None
        if data.id:
            existing = await self.repository.get_option_set(product_id, coverage_id, data.id)

        if existing is not None:
            requested = fields.get("structure")
            if requested is not None and LimitStructure(requested) != existing.structure:
                options = await self.repository.get_options(product_id, coverage_id, existing.id)
                affected = sum(1 for o in options if o.structure == existing.structure)
                if affected and not confirm_structure_change:
                    raise StructureChangeError(
                        existing.id, existing.structure.value, LimitStructure(requested).value, affected
                    )
                self.logger.warning(
                    f"Structure of option set {existing.id} changed from '{existing.structure.value}' "
                    f"to '{LimitStructure(requested).value}'; {affected} option(s) are now hidden until edited"
                )

            update = data.model_dump(
                mode="json", by_alias=True, exclude_none=True, exclude_unset=True, exclude={"id"}
            )
            update["updatedAt"] = now.isoformat()
            await self.store.batch_write([
                WriteOp.update(option_set_path(product_id, coverage_id, existing.id), update)
            ])
            self.logger.info(
                f"Updated option set {existing.id}",
                extra={"product_id": product_id, "coverage_id": coverage_id, "fields": sorted(update)},
            )
            return existing.id

        if "structure" not in fields:
            raise LimitValidationError(["Structure is required"], "Option set is invalid")

        set_id = data.id or self.store.new_id()
        option_set = ensure_basis_config(CoverageLimitOptionSet(
            **fields,
            id=set_id,
            product_id=product_id,
            coverage_id=coverage_id,
            created_at=now,
            updated_at=now,
        ))
        await self.store.batch_write([
            WriteOp.set(option_set_path(product_id, coverage_id, set_id), option_set.to_document())
        ])
        self.logger.info(
            f"Created option set {set_id} ({option_set.structure.value})",
            extra={"product_id": product_id, "coverage_id": coverage_id},
        )
        return set_id

    async def delete_limit_option_set(self, product_id: str, coverage_id: str, set_id: str) -> int:
        """Delete a set and all of its options in one batch.

        Returns:
            int: Number of options deleted with the set
        """
        loaded = await self._require_set_with_options(product_id, coverage_id, set_id)
        ops = [WriteOp.delete(option_path(product_id, coverage_id, set_id, o.id)) for o in loaded.options]
        ops.append(WriteOp.delete(option_set_path(product_id, coverage_id, set_id)))
        await self.store.batch_write(ops)

        self.logger.info(
            f"Deleted option set {set_id} with {len(loaded.options)} option(s)",
            extra={"product_id": product_id, "coverage_id": coverage_id},
        )
        return len(loaded.options)

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    async def upsert_limit_option(
        self,
        product_id: str,
        coverage_id: str,
        set_id: str,
        data: LimitOptionInput,
    ) -> str:
        """Create an option, or merge ``data`` into the existing option with ``data.id``.

        The display value is always recomputed from the value. A label that
        still equals the old display value follows the new one; an explicit
        label is kept.

        Raises:
            NotFoundError: Unknown option set
            LimitValidationError: Invalid value, duplicate value or wrong shape
        """
        loaded = await self._require_set_with_options(product_id, coverage_id, set_id)
        option_set, siblings = loaded.option_set, loaded.options
        fields = _supplied_fields(data)
        now = _utcnow()

        existing = next((o for o in siblings if data.id and o.id == data.id), None)

        if existing is not None:
            order = fields.get("display_order")
            taken = [o for o in siblings if o.id != existing.id and o.display_order == order]
            if order is not None and taken:
                raise LimitValidationError([
                    f"Display order {order} is already used by option '{taken[0].label}'; "
                    "use reorder to move options"
                ])
            option = existing.model_copy(update={**fields, "updated_at": now})
            auto_label = not existing.label or existing.label == existing.display_value
        else:
            if "value" not in fields:
                raise LimitValidationError(["Limit value is required"])
            # new options always append
            option = CoverageLimitOption(**{
                **fields,
                "display_order": next_display_order(siblings),
                "id": data.id or self.store.new_id(),
                "created_at": now,
                "updated_at": now,
            })
            auto_label = True

        option.display_value = generate_display_value(option.value)
        if "label" not in fields and auto_label:
            option.label = option.display_value

        result = validate_limit_option(option, siblings, option_set)
        if not result.valid:
            self.logger.info(
                f"Rejected option write for set {set_id}: {'; '.join(result.errors)}",
                extra={"product_id": product_id, "coverage_id": coverage_id},
            )
            raise LimitValidationError(result.errors)

        ops = [WriteOp.set(option_path(product_id, coverage_id, set_id, option.id), option.to_document())]
        if option.is_default and option_set.selection_mode == "single":
            ops.extend(
                WriteOp.update(option_path(product_id, coverage_id, set_id, o.id), {"isDefault": False, "updatedAt": now.isoformat()})
                for o in siblings
                if o.id != option.id and o.is_default
            )
        await self.store.batch_write(ops)

        self.logger.info(
            f"{'Updated' if existing else 'Created'} option {option.id} in set {set_id}",
            extra={"product_id": product_id, "coverage_id": coverage_id, "display_value": option.display_value},
        )
        return option.id

    async def add_option(
        self,
        product_id: str,
        coverage_id: str,
        set_id: str,
        data: LimitOptionInput,
    ) -> str:
        """Append a new option after the current last one."""
        data = data.model_copy(update={"id": None})
        return await self.upsert_limit_option(product_id, coverage_id, set_id, data)

    async def delete_limit_option(self, product_id: str, coverage_id: str, set_id: str, option_id: str) -> None:
        option = await self.repository.get_option(product_id, coverage_id, set_id, option_id)
        if option is None:
            raise NotFoundError("Limit option", option_id)
        await self.store.delete(option_path(product_id, coverage_id, set_id, option_id))
        self.logger.info(f"Deleted option {option_id} from set {set_id}")

    async def set_default_option(self, product_id: str, coverage_id: str, set_id: str, option_id: str) -> int:
        """Make ``option_id`` the only default of the set.

        Returns:
            int: Number of options written; 0 when the default was already set
        """
        options = await self.repository.get_options(product_id, coverage_id, set_id)
        if not any(o.id == option_id for o in options):
            raise NotFoundError("Limit option", option_id)

        now = _utcnow().isoformat()
        ops = [
            WriteOp.update(
                option_path(product_id, coverage_id, set_id, o.id),
                {"isDefault": o.id == option_id, "updatedAt": now},
            )
            for o in options
            if (o.id == option_id) != o.is_default
        ]
        if not ops:
            return 0

        await self.store.batch_write(ops)
        self.logger.info(f"Default option of set {set_id} is now {option_id} ({len(ops)} write(s))")
        return len(ops)

    async def reorder_options(
        self, product_id: str, coverage_id: str, set_id: str, ordered_ids: Sequence[str]
    ) -> int:
        """Assign ``displayOrder`` from the position of each id in ``ordered_ids``.

        Returns:
            int: Number of options whose order changed

        Raises:
            InvalidReorderError: ``ordered_ids`` is not a permutation of the set's option ids
        """
        options = await self.repository.get_options(product_id, coverage_id, set_id)
        current = {o.id: o for o in options}
        counts = Counter(ordered_ids)

        missing = [option_id for option_id in current if option_id not in counts]
        unknown = [option_id for option_id in counts if option_id not in current]
        duplicated = [option_id for option_id, n in counts.items() if n > 1]
        if missing or unknown or duplicated:
            raise InvalidReorderError(missing, unknown, duplicated)

        now = _utcnow().isoformat()
        ops = [
            WriteOp.update(
                option_path(product_id, coverage_id, set_id, option_id),
                {"displayOrder": index, "updatedAt": now},
            )
            for index, option_id in enumerate(ordered_ids)
            if current[option_id].display_order != index
        ]
        if ops:
            await self.store.batch_write(ops)
            self.logger.info(f"Reordered {len(ops)} option(s) in set {set_id}")
        return len(ops)

    async def apply_template(
        self, product_id: str, coverage_id: str, set_id: str, template_id: str
    ) -> List[str]:
        """Append a template's options to a set in one batch.

        Options whose values already exist in the set are skipped. In a
        single-select set the template's default is dropped when the set
        already has one, and only its first default is kept otherwise.

        Returns:
            List[str]: Ids of the created options

        Raises:
            LimitValidationError: The template's structure or split keys differ
                from the set's; nothing is written
        """
        template = get_template_by_id(template_id)
        if template is None:
            raise NotFoundError("Limit template", template_id)

        loaded = await self._require_set_with_options(product_id, coverage_id, set_id)
        option_set, existing = loaded.option_set, loaded.options
        if template.structure != option_set.structure:
            raise LimitValidationError([
                f"Template '{template.name}' uses structure '{template.structure.value}' but option set "
                f"{set_id} uses '{option_set.structure.value}'"
            ])

        ops: List[WriteOp] = []
        created: List[str] = []
        now = _utcnow()
        seen_keys = {option_value_key(o.value) for o in existing}
        has_default = any(o.is_default for o in existing)
        single_select = option_set.selection_mode == "single"
        order = next_display_order(existing)

        if option_set.structure == LimitStructure.SPLIT and not option_set.split_components:
            option_set = option_set.model_copy(
                update={"split_components": get_split_components_for_template(template_id)}
            )
            ops.append(WriteOp.update(
                option_set_path(product_id, coverage_id, set_id),
                {
                    "splitComponents": [
                        c.model_dump(mode="json", by_alias=True) for c in option_set.split_components
                    ],
                    "updatedAt": now.isoformat(),
                },
            ))

        errors: List[str] = []
        for option in generate_options_from_template(template):
            key = option_value_key(option.value)
            if key in seen_keys:
                continue
            seen_keys.add(key)

            result = validate_limit_option(option, option_set=option_set)
            if not result.valid:
                errors.extend(f"{option.label}: {message}" for message in result.errors)
                continue

            is_default = option.is_default and not (single_select and has_default)
            has_default = has_default or is_default
            option_id = self.store.new_id()
            option = option.model_copy(update={
                "id": option_id,
                "is_default": is_default,
                "display_order": order,
                "created_at": now,
                "updated_at": now,
            })
            ops.append(WriteOp.set(option_path(product_id, coverage_id, set_id, option_id), option.to_document()))
            created.append(option_id)
            order += 1

        if errors:
            self.logger.info(
                f"Rejected template '{template_id}' for set {set_id}: {'; '.join(errors)}",
                extra={"product_id": product_id, "coverage_id": coverage_id},
            )
            raise LimitValidationError(
                errors, f"Template '{template.name}' does not fit option set {set_id}"
            )

        if ops:
            await self.store.batch_write(ops)
        self.logger.info(
            f"Applied template '{template_id}' to set {set_id}: {len(created)} option(s) added",
            extra={"product_id": product_id, "coverage_id": coverage_id},
        )
        return created
