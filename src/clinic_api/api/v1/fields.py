"""Validated field types and query-parameter dependencies shared by the v1 routes."""

from __future__ import annotations

import re
from typing import Annotated

from fastapi import Query
from pydantic import AfterValidator, BeforeValidator, EmailStr, StringConstraints

from src.clinic_api.domain.models.pagination import PageRequest
from src.clinic_api.utils.slug import SLUG_PATTERN

CPF_PATTERN = r"^(\d{3}\.\d{3}\.\d{3}-\d{2}|\d{11})$"
PHONE_PATTERN = r"^(\(\d{2}\)\s?)?\d{4,5}-?\d{4}$"

MAX_PAGE_SIZE = 100
MAX_CHAT_PAGE_SIZE = 200


def _strip(value: object) -> object:
    return value.strip() if isinstance(value, str) else value


def _lower(value: str) -> str:
    return value.lower()


def _check_password_strength(value: str) -> str:
    # Checked with ``re`` because pydantic-core patterns have no lookahead.
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        raise ValueError("Password must contain at least one lowercase letter, one uppercase letter and one number")
    return value


Email = Annotated[EmailStr, BeforeValidator(_strip), AfterValidator(_lower)]
Password = Annotated[str, StringConstraints(min_length=8, max_length=100), AfterValidator(_check_password_strength)]
PersonName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=100)]
WorkspaceName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=100)]
Slug = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=50, pattern=SLUG_PATTERN)]
PatientName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=200)]
Cpf = Annotated[str, StringConstraints(strip_whitespace=True, pattern=CPF_PATTERN)]
Phone = Annotated[str, StringConstraints(strip_whitespace=True, pattern=PHONE_PATTERN)]
Address = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
Notes = Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]
ChiefComplaint = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=1000)]
MessageContent = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=5000)]
NonEmpty = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
PlanName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)


def chat_page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=MAX_CHAT_PAGE_SIZE),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)
