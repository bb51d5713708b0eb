"""Bytecode matching tolerant of link-time and deploy-time placeholders.

Compiled bytecode from solc is not always what ends up on chain:

  - linked libraries leave a ``__<38 chars>`` placeholder that the
    deployer replaces with the 40 hex chars of the library address
  - immutable addresses not yet known at compile time show up as
    ``PUSH20 0xff..ff`` (``73`` + 40 ``f``)

``matches`` turns the reference bytecode into a regular expression with
wildcards over those regions and searches the candidate code with it.
"""

from __future__ import annotations

import re
from functools import lru_cache

LIBRARY_PLACEHOLDER = re.compile(r"__.{38}")
IMMUTABLE_ADDRESS_PLACEHOLDER = re.compile(r"73f{40}")

LIBRARY_WILDCARD = ".{40}"
IMMUTABLE_ADDRESS_WILDCARD = ".{42}"

# Pattern length cap. Bytecode past this prefix is not compared, so very
# large contracts sharing a long common prefix can match each other.
MAX_PATTERN_LENGTH = 32767


def bytecode_to_pattern(bytecode: str = "") -> str:
    """Build the placeholder-agnostic pattern string for ``bytecode``."""
    pattern = LIBRARY_PLACEHOLDER.sub(LIBRARY_WILDCARD, bytecode or "")
    pattern = IMMUTABLE_ADDRESS_PLACEHOLDER.sub(IMMUTABLE_ADDRESS_WILDCARD, pattern)
    return pattern[:MAX_PATTERN_LENGTH]


@lru_cache(maxsize=4096)
def _compiled(bytecode: str) -> re.Pattern[str]:
    return re.compile(bytecode_to_pattern(bytecode))


def matches(candidate_code: str, reference_bytecode: str) -> bool:
    """Return True if ``candidate_code`` contains ``reference_bytecode``,
    ignoring library link and immutable address placeholders."""
    if not candidate_code:
        return False
    return _compiled(reference_bytecode or "").search(candidate_code) is not None
