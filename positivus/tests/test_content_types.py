import pytest

from positivus.content_types import (
    CONTENT_TYPES,
    clamp_field,
    draft_defaults,
    form_values,
    get_content_type,
    get_field,
    validate_form,
)


def test_every_content_type_declares_its_table_and_sidebar_fields():
    for key, content_type in CONTENT_TYPES.items():
        assert content_type["table"] == key
        assert get_field(content_type, content_type["title_field"])
        assert get_field(content_type, content_type["description_field"])
        assert get_field(content_type, "sort_order")["min"] == 0
        if content_type["image_field"]:
            assert content_type["bucket"]
            assert get_field(content_type, content_type["image_field"])["type"] == "image"


def test_content_type_lookup_accepts_slug_or_table():
    assert get_content_type("case-studies") is CONTENT_TYPES["case_studies"]
    assert get_content_type("case_studies") is CONTENT_TYPES["case_studies"]
    assert get_content_type("blog-posts") is None


def test_required_fields_are_trimmed_before_checking():
    row, errors = validate_form(CONTENT_TYPES["team_members"], {"name": "  ", "role": " Lead ", "sort_order": 0})
    assert errors == {"name": "Name is required"}
    assert row["role"] == "Lead"


def test_length_limits():
    values = {"title": "x" * 101, "description": "y" * 501, "sort_order": 0}
    _, errors = validate_form(CONTENT_TYPES["services"], values)
    assert errors["title"] == "Title must be 100 characters or fewer"
    assert errors["description"] == "Description must be 500 characters or fewer"


def test_link_url_must_be_http_url_when_present():
    base = {"title": "Case", "short_description": "Desc", "sort_order": 0}
    _, errors = validate_form(CONTENT_TYPES["case_studies"], dict(base, link_url="javascript:alert(1)"))
    assert errors["link_url"] == "Link URL must be a valid URL"
    row, errors = validate_form(CONTENT_TYPES["case_studies"], dict(base, link_url=""))
    assert errors == {}
    assert row["link_url"] is None


def test_socials_json_must_parse():
    base = {"name": "Jane", "role": "Ops", "sort_order": 0}
    _, errors = validate_form(CONTENT_TYPES["team_members"], dict(base, socials_json="{not json"))
    assert errors["socials_json"] == "Socials (JSON) must be valid JSON"
    row, errors = validate_form(CONTENT_TYPES["team_members"], dict(base, socials_json='{"linkedin": "https://x.test"}'))
    assert errors == {}


@pytest.mark.parametrize("value, message", [
    ("0", "Step Number must be at least 1"),
    ("abc", "Step Number must be a whole number"),
    ("", "Step Number is required"),
])
def test_step_number_rules(value, message):
    values = {"step_no": value, "title": "T", "description": "D", "sort_order": 0}
    _, errors = validate_form(CONTENT_TYPES["working_processes"], values)
    assert errors["step_no"] == message


def test_rating_is_optional_but_bounded():
    base = {"name": "Ada", "role_company": "Engineer", "message": "Great!", "sort_order": 0}
    row, errors = validate_form(CONTENT_TYPES["testimonials"], dict(base, rating=""))
    assert errors == {}
    assert row["rating"] is None
    row, errors = validate_form(CONTENT_TYPES["testimonials"], dict(base, rating="4"))
    assert row["rating"] == 4


def test_checkbox_values_become_booleans():
    values = {"title": "T", "description": "D", "sort_order": "2", "is_active": "on"}
    row, errors = validate_form(CONTENT_TYPES["services"], values)
    assert errors == {}
    assert row["is_active"] is True
    assert row["sort_order"] == 2


def test_clamp_pulls_numbers_into_range():
    sort_order = get_field(CONTENT_TYPES["services"], "sort_order")
    step_no = get_field(CONTENT_TYPES["working_processes"], "step_no")
    rating = get_field(CONTENT_TYPES["testimonials"], "rating")
    assert clamp_field(sort_order, "-3") == 0
    assert clamp_field(sort_order, "junk") == 0
    assert clamp_field(step_no, 0) == 1
    assert clamp_field(rating, 0) == 1
    assert clamp_field(rating, "12") == 5
    assert clamp_field(get_field(CONTENT_TYPES["services"], "title"), " keep ") == " keep "


def test_draft_defaults_and_form_values():
    draft = draft_defaults(CONTENT_TYPES["case_studies"], 4)
    assert draft == {
        "title": "",
        "short_description": "",
        "cover_image_url": "",
        "link_url": "",
        "sort_order": 4,
        "is_active": False,
    }
    values = form_values(CONTENT_TYPES["case_studies"], {"id": "x", "title": "T", "cover_image_url": None, "sort_order": 1})
    assert "id" not in values
    assert values["cover_image_url"] == ""
