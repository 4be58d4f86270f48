"""
APP USER ID COMPOSITE

The payment provider only knows an "app user id". We hand it
"<owner_id>_<record_id>" at purchase time and read it back from webhook
events to find the record being paid for.

Owner ids come from the identity provider and may themselves contain "_",
record ids never do. Parsing therefore splits on the LAST separator only:

    compose_app_user_id("a_b", "123")  -> "a_b_123"
    parse_app_user_id("a_b_123")       -> ("a_b", "123")
"""

from typing import Tuple

SEPARATOR = "_"


class InvalidAppUserIdError(ValueError):
    """Raised when an app user id cannot be split into owner and record"""
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Malformed app_user_id: {value!r}")


def compose_app_user_id(owner_id: str, record_id: str) -> str:
    if not owner_id or not record_id:
        raise ValueError("owner_id and record_id are required")
    if SEPARATOR in record_id:
        raise ValueError(f"record_id must not contain {SEPARATOR!r}")
    return f"{owner_id}{SEPARATOR}{record_id}"


def parse_app_user_id(value: str) -> Tuple[str, str]:
    """Return (owner_id, record_id)"""
    if not isinstance(value, str):
        raise InvalidAppUserIdError(str(value))

    owner_id, sep, record_id = value.rpartition(SEPARATOR)
    if not sep or not owner_id or not record_id:
        raise InvalidAppUserIdError(value)

    return owner_id, record_id
