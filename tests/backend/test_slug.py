import re

import pytest

from src.clinic_api.utils.slug import MAX_SLUG_LENGTH, SLUG_PATTERN, generate_slug, is_valid_slug


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Clínica São José", "clinica-sao-jose"),
        ("  Consultório   Dr. Álvaro  ", "consultorio-dr-alvaro"),
        ("Clinica--Central", "clinica-central"),
        ("Odonto_Kids 2024!", "odontokids-2024"),
    ],
)
def test_generate_slug(name, expected):
    slug = generate_slug(name)
    assert slug == expected
    assert re.match(SLUG_PATTERN, slug)


def test_name_without_usable_characters_gives_empty_slug():
    assert generate_slug("!!! ???") == ""


def test_long_name_is_cut_to_max_length():
    slug = generate_slug("Clinica Medica Integrada de Especialidades Pediatricas do Sul")
    assert slug == "clinica-medica-integrada-de-especialidades-pediatr"
    assert len(slug) == MAX_SLUG_LENGTH
    assert is_valid_slug(slug)


def test_cut_on_a_hyphen_drops_it():
    slug = generate_slug("Clinica Medica Integrada de Especialidades Kids12 Sul")
    assert slug == "clinica-medica-integrada-de-especialidades-kids12"
    assert is_valid_slug(slug)


@pytest.mark.parametrize(
    "slug, valid",
    [
        ("clinica-central", True),
        ("abc", True),
        ("dr", False),
        ("", False),
        ("a" * 51, False),
        ("clinica-", False),
        ("Clinica", False),
    ],
)
def test_is_valid_slug(slug, valid):
    assert is_valid_slug(slug) is valid
