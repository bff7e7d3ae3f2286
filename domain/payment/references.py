"""
external_reference 前缀分类

The prefix convention decides which business activation applies to an
approved payment. Dispatch tables elsewhere are keyed by ReferenceType so the
string matching lives only here.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class ReferenceType(str, Enum):
    COURSE = "course"
    PRODUCT = "product"
    SERVICE = "service"
    SUBSCRIPTION = "subscription"
    DEFAULT = "default"


REFERENCE_PREFIXES: tuple[tuple[str, ReferenceType], ...] = (
    ("COURSE_", ReferenceType.COURSE),
    ("PRODUCT_", ReferenceType.PRODUCT),
    ("SERVICE_", ReferenceType.SERVICE),
    ("SUBSCRIPTION_", ReferenceType.SUBSCRIPTION),
)

# One storage slot per reference, so it must be a safe file name.
_SAFE_REFERENCE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,199}$")


def classify_reference(external_reference: Optional[str]) -> ReferenceType:
    if not external_reference:
        return ReferenceType.DEFAULT
    for prefix, ref_type in REFERENCE_PREFIXES:
        if external_reference.startswith(prefix):
            return ref_type
    return ReferenceType.DEFAULT


def validate_reference(external_reference: str) -> str:
    if not external_reference or not _SAFE_REFERENCE.match(external_reference) or ".." in external_reference:
        raise DomainValidationException(
            f"Invalid external reference: {external_reference!r}",
            field="external_reference",
        )
    return external_reference
