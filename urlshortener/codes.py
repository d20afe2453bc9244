import re
import secrets
import string
from typing import Callable

ALPHABET = string.ascii_letters + string.digits
CUSTOM_CODE_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,32}$")

CodeGenerator = Callable[[int], str]


def generate_code(length: int = 7) -> str:
    """Random base62 code. 62**7 is ~3.5e12 codes, so collisions stay rare."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def is_valid_custom_code(code: str) -> bool:
    return bool(CUSTOM_CODE_PATTERN.match(code))
