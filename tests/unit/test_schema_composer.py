"""Schema composer and rule generator tests."""

from __future__ import annotations

from datetime import date

import pytest

from formflow.composition import (
    CompositeSchema,
    RuleGeneratorRegistry,
    SchemaComposer,
    default_rule_registry,
    text_rule,
)
from formflow.errors import ConfigurationError, UnknownFieldKindError
from formflow.schemas.answer_models import (
    BooleanAnswer,
    DateAnswer,
    FileUploadAnswer,
    MultiChoiceAnswer,
    NumberAnswer,
    RatingAnswer,
    SingleChoiceAnswer,
    TextAnswer,
)
from formflow.schemas.field_models import FieldDescriptor


def _field(field_id: str, kind: str, **constraints: object) -> FieldDescriptor:
    return FieldDescriptor.model_validate(
        {"id": field_id, "kind": kind, "constraints": constraints}
    )


def test_compose_is_order_independent_and_idempotent() -> None:
    """Same set of fields should yield equal schemas regardless of order."""
    composer = SchemaComposer()
    first = _field("name", "text")
    second = _field("score", "rating")

    forward = composer.compose([first, second])
    backward = SchemaComposer().compose([second, first])

    assert forward == backward
    assert forward.field_ids == ("name", "score")
    assert composer.compose([first, second]) is forward


def test_merge_is_commutative_and_idempotent() -> None:
    """Merging partial schemas should not depend on merge order."""
    composer = SchemaComposer()
    left = composer.compose([_field("a", "text")])
    right = composer.compose([_field("b", "boolean")])

    assert left.merge(right) == right.merge(left)
    assert (left | left) == left
    assert (left | right).field_ids == ("a", "b")


def test_merge_rejects_conflicting_rules_for_same_field() -> None:
    """Two different rules for one field id are a configuration bug."""
    composer = SchemaComposer()
    as_text = composer.compose([_field("a", "text")])
    as_number = composer.compose([_field("a", "number")])

    with pytest.raises(ConfigurationError):
        as_text.merge(as_number)


def test_unknown_kind_raises_configuration_error() -> None:
    """Fields with unregistered kinds cannot be composed."""
    with pytest.raises(UnknownFieldKindError) as exc_info:
        SchemaComposer().compose([_field("signature", "signature_pad")])
    assert exc_info.value.kind == "signature_pad"
    assert exc_info.value.field_id == "signature"


def test_custom_rule_generator_can_be_registered() -> None:
    """Registries should accept new kinds without touching the composer."""
    registry = default_rule_registry()
    registry.register("signature_pad", text_rule)
    schema = SchemaComposer(registry).compose([_field("signature", "signature_pad")])
    assert schema.field_ids == ("signature",)
    assert "signature_pad" in registry.kinds()


def test_empty_registry_has_no_kinds() -> None:
    """A bare registry should reject every kind."""
    registry = RuleGeneratorRegistry()
    assert registry.kinds() == frozenset()
    with pytest.raises(UnknownFieldKindError):
        registry.rule_for(_field("a", "text"))


def test_missing_required_answer_is_reported() -> None:
    """Required fields without answers should produce a missing issue."""
    schema = SchemaComposer().compose([_field("name", "text"), _field("notes", "text", required=False)])
    issues = schema.validate({})
    assert [issue.field_id for issue in issues] == ["name"]
    assert issues[0].code == "missing"


def test_text_constraints_are_enforced() -> None:
    """Blank, too-long and pattern-mismatching text should be rejected."""
    schema = SchemaComposer().compose(
        [
            _field("code", "text", max_length=4, pattern=r"^[A-Z]+$"),
            _field("name", "text"),
        ]
    )
    issues = schema.validate(
        {"code": TextAnswer(value="abcdef"), "name": TextAnswer(value="   ")}
    )
    assert {issue.field_id for issue in issues} == {"code", "name"}
    assert schema.validate(
        {"code": TextAnswer(value="ABC"), "name": TextAnswer(value="Ada")}
    ) == []


def test_choice_constraints_are_enforced() -> None:
    """Choices must come from the declared options and respect bounds."""
    schema = SchemaComposer().compose(
        [
            _field("colour", "single_choice", choices=["red", "blue"]),
            _field("toppings", "multi_choice", choices=["a", "b", "c"], max_choices=2),
        ]
    )
    issues = schema.validate(
        {
            "colour": SingleChoiceAnswer(value="green"),
            "toppings": MultiChoiceAnswer(value=("a", "b", "c")),
        }
    )
    assert [issue.field_id for issue in issues] == ["colour", "toppings"]

    assert schema.validate(
        {
            "colour": SingleChoiceAnswer(value="red"),
            "toppings": MultiChoiceAnswer(value=("c", "a")),
        }
    ) == []


def test_required_multi_choice_needs_a_selection() -> None:
    """Empty selections should fail for required multi-choice fields."""
    schema = SchemaComposer().compose([_field("toppings", "multi_choice", choices=["a"])])
    issues = schema.validate({"toppings": MultiChoiceAnswer(value=())})
    assert [issue.field_id for issue in issues] == ["toppings"]


def test_duplicate_multi_choice_items_are_rejected() -> None:
    """Repeated selections should be reported."""
    schema = SchemaComposer().compose([_field("tags", "multi_choice")])
    issues = schema.validate({"tags": MultiChoiceAnswer(value=("x", "x"))})
    assert [issue.field_id for issue in issues] == ["tags"]


def test_rating_and_number_bounds() -> None:
    """Ratings default to a 1..5 scale; numbers honour declared bounds."""
    schema = SchemaComposer().compose(
        [
            _field("stars", "rating"),
            _field("guests", "number", min_value=1, max_value=10),
        ]
    )
    issues = schema.validate(
        {"stars": RatingAnswer(value=6), "guests": NumberAnswer(value=0)}
    )
    assert [issue.field_id for issue in issues] == ["guests", "stars"]
    assert schema.validate(
        {"stars": RatingAnswer(value=5), "guests": NumberAnswer(value=3)}
    ) == []


def test_boolean_and_date_answers_validate() -> None:
    """Boolean and date answers should pass their rules."""
    schema = SchemaComposer().compose([_field("agree", "boolean"), _field("day", "date")])
    assert schema.validate(
        {"agree": BooleanAnswer(value=False), "day": DateAnswer(value=date(2026, 1, 2))}
    ) == []


def test_file_upload_policy_checks_size_and_content_type() -> None:
    """Upload rules should enforce byte limits and content-type wildcards."""
    schema = SchemaComposer().compose(
        [_field("photo", "file_upload", max_bytes=4, allowed_content_types=["image/*"])]
    )
    too_big = FileUploadAnswer(filename="a.png", content_type="image/png", content=b"12345")
    wrong_type = FileUploadAnswer(filename="a.pdf", content_type="application/pdf", content=b"1")
    fine = FileUploadAnswer(filename="a.png", content_type="IMAGE/PNG", content=b"1234")

    assert [issue.field_id for issue in schema.validate({"photo": too_big})] == ["photo"]
    assert [issue.field_id for issue in schema.validate({"photo": wrong_type})] == ["photo"]
    assert schema.validate({"photo": fine}) == []


def test_kind_mismatch_is_reported_per_field() -> None:
    """An answer of the wrong kind should yield a kind_mismatch issue."""
    schema = SchemaComposer().compose([_field("agree", "boolean")])
    issues = schema.validate({"agree": TextAnswer(value="yes")})
    assert len(issues) == 1
    assert issues[0].code == "kind_mismatch"


def test_answers_outside_schema_are_ignored() -> None:
    """Answers for other steps must not influence this schema's result."""
    schema = SchemaComposer().compose([_field("name", "text")])
    assert schema.validate(
        {"name": TextAnswer(value="Ada"), "other": RatingAnswer(value=99)}
    ) == []


def test_empty_schema_accepts_anything() -> None:
    """A schema with no rules never reports issues."""
    assert CompositeSchema().validate({"x": TextAnswer(value="")}) == []
