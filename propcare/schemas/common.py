import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def normalize_phone(value: str) -> str:
    """
    Normalize a phone number to E.164.

    Ten bare digits are treated as a North American number.
    """
    digits = re.sub(r"\D", "", value)
    if len(digits) == 10:
        digits = f"1{digits}"
    normalized = f"+{digits}"
    if not _E164_RE.match(normalized):
        raise ValueError("Phone must be a valid format")
    return normalized


def normalize_email(value: str) -> str:
    return value.strip().lower()
