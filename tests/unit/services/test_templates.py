"""Tests for limit option templates."""

import pytest

from coverage_limits.schemas.limit_options import LimitStructure, SplitLimitValue
from coverage_limits.services.limits.display import generate_display_value
from coverage_limits.services.limits.templates import (
    ALL_LIMIT_TEMPLATES,
    AUTO_SPLIT_LIMITS,
    generate_options_from_template,
    get_split_components_for_template,
    get_template_by_id,
    get_templates_by_category,
    get_templates_by_structure,
)
from coverage_limits.services.limits.validation import option_value_key, validate_limit_option


class TestTemplateCatalog:
    """Test suite for the built-in template catalog."""

    def test_ids_are_unique(self):
        ids = [t.id for t in ALL_LIMIT_TEMPLATES]
        assert len(ids) == len(set(ids))

    @pytest.mark.parametrize("template", ALL_LIMIT_TEMPLATES, ids=lambda t: t.id)
    def test_template_options_are_valid(self, template):
        """Test that every template option matches its structure and passes validation."""
        for option in template.options:
            assert option.structure == template.structure
            assert option.display_value == generate_display_value(option.value)
            assert validate_limit_option(option).valid

        keys = [option_value_key(o.value) for o in template.options]
        assert len(keys) == len(set(keys))

    def test_lookup_by_category_and_structure(self):
        assert {t.id for t in get_templates_by_category("Auto")} == {"auto-split", "auto-csl"}
        assert [t.id for t in get_templates_by_structure(LimitStructure.OCC_AGG)] == ["gl-occ-agg"]
        assert get_templates_by_category("Marine") == []

    def test_lookup_by_id(self):
        assert get_template_by_id("property-single").structure == LimitStructure.SINGLE
        assert get_template_by_id("missing") is None


class TestGenerateOptionsFromTemplate:
    """Test suite for generate_options_from_template."""

    def test_returns_fresh_copies(self):
        options = generate_options_from_template(AUTO_SPLIT_LIMITS)

        assert all(o.id is None for o in options)
        assert [o.display_order for o in options] == list(range(len(AUTO_SPLIT_LIMITS.options)))

        options[0].value.components[0].amount = 1
        assert AUTO_SPLIT_LIMITS.options[0].value.components[0].amount == 25_000

    def test_split_components(self):
        components = get_split_components_for_template("auto-split")

        assert [(c.key, c.order) for c in components] == [("biPerPerson", 0), ("biPerAccident", 1), ("pd", 2)]
        assert isinstance(AUTO_SPLIT_LIMITS.options[0].value, SplitLimitValue)

    def test_split_components_for_other_structures(self):
        assert get_split_components_for_template("auto-csl") == []
        assert get_split_components_for_template("missing") == []
