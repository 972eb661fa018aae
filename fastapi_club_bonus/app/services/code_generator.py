from __future__ import annotations

import random
import string
from typing import AbstractSet, Callable, MutableSet

CODE_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_MAX_ATTEMPTS = 10


class CodeGenerationExhausted(RuntimeError):
    """No unused code could be produced within the attempt budget."""


def generate_code(
    prefix: str,
    length: int,
    exclude: AbstractSet[str],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    rng: random.Random | None = None,
) -> str:
    suffix_length = length - len(prefix)
    if suffix_length <= 0:
        raise ValueError("code length must exceed the prefix length")

    source = rng or random
    for _ in range(max(max_attempts, 1)):
        code = prefix + "".join(source.choices(CODE_ALPHABET, k=suffix_length))
        if code not in exclude:
            return code
    raise CodeGenerationExhausted(f"no unused code after {max_attempts} attempts")


def make_minter(
    prefix: str,
    length: int,
    minted: MutableSet[str],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    rng: random.Random | None = None,
) -> Callable[[], str]:
    """Per-batch generator; every code it returns is added to `minted`.

    Generation and registration happen without a suspension point, so
    concurrent recipients of one batch never receive the same code.
    """

    def mint() -> str:
        code = generate_code(prefix, length, minted, max_attempts=max_attempts, rng=rng)
        minted.add(code)
        return code

    return mint
