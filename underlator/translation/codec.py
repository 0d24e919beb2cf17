"""
Chunk codec for contextual and block translation.

Fragments are packed into one string with a reserved delimiter, sent to the
backend, and the response is split back into fragments. The backend is asked
to echo every delimiter verbatim; when it produces extra delimiters the tail is
folded into the last fragment, when it produces too few the response cannot be
realigned and reconciliation fails.
"""

from typing import Dict, Iterable, List

from underlator.config import DEFAULT_CHUNK_DELIMITER
from underlator.exceptions import DelimiterCollision, EmptyInput, ReconciliationError
from underlator.logger import get_logger

logger = get_logger(__name__)


def combine(fragments: Iterable[str], delimiter: str = DEFAULT_CHUNK_DELIMITER) -> str:
    """
    Join fragments into one string separated by the delimiter.

    Non-string and blank fragments are skipped.

    Args:
        fragments: Ordered text fragments
        delimiter: Reserved chunk delimiter

    Returns:
        Combined text, "" for an empty list

    Raises:
        EmptyInput: If fragments were given but none of them is usable

    Example:
        >>> combine(['Hello', 'world'], '|')
        'Hello|world'
    """
    fragments = list(fragments)
    if not fragments:
        return ""

    valid = [fragment for fragment in fragments if isinstance(fragment, str) and fragment.strip()]
    if not valid:
        raise EmptyInput("All chunks are empty or invalid", details={"count": len(fragments)})

    return delimiter.join(valid)


def split(text: str, delimiter: str = DEFAULT_CHUNK_DELIMITER) -> List[str]:
    """
    Split combined text back into trimmed, non-empty fragments.

    Example:
        >>> split(' Hello | world |', '|')
        ['Hello', 'world']
    """
    if not text or not text.strip():
        return []

    return [part.strip() for part in text.strip().split(delimiter) if part.strip()]


def reconcile(expected_count: int, fragments: List[str]) -> List[str]:
    """
    Align a split response with the number of fragments that were sent.

    Args:
        expected_count: Number of fragments in the request
        fragments: Fragments recovered from the response

    Returns:
        Exactly expected_count fragments

    Raises:
        ReconciliationError: If the response holds fewer fragments than expected
    """
    actual_count = len(fragments)
    if actual_count == expected_count:
        return list(fragments)

    if expected_count <= 0:
        raise ReconciliationError(
            f"Expected no chunks, but got {actual_count}",
            details={"expected": expected_count, "actual": actual_count},
        )

    if actual_count > expected_count:
        logger.warning(
            f"Expected {expected_count} chunks, but got {actual_count}. "
            "Combining extra chunks into the last one"
        )
        corrected = list(fragments[:expected_count - 1])
        corrected.append(" ".join(fragments[expected_count - 1:]))
        return corrected

    raise ReconciliationError(
        f"Expected {expected_count} chunks, but got {actual_count}: "
        "the model dropped chunk delimiters",
        details={"expected": expected_count, "actual": actual_count},
    )


def to_record(fragments: List[str]) -> Dict[int, str]:
    """Convert an ordered fragment list to an index -> text map."""
    return {index: text for index, text in enumerate(fragments)}


def from_record(record: Dict[int, str], count: int, fill: str = "") -> List[str]:
    """Convert an index -> text map back to an ordered list of ``count`` items."""
    return [record.get(index, fill) for index in range(count)]


def ensure_no_delimiter(fragments: Iterable[str], delimiter: str = DEFAULT_CHUNK_DELIMITER) -> None:
    """Reject fragments that already contain the reserved delimiter."""
    for index, fragment in enumerate(fragments):
        if isinstance(fragment, str) and delimiter in fragment:
            raise DelimiterCollision(
                f"Chunk {index} contains the reserved delimiter {delimiter!r}",
                details={"index": index},
            )


def process_contextual_response(
    text: str,
    expected_count: int,
    delimiter: str = DEFAULT_CHUNK_DELIMITER,
) -> Dict[int, str]:
    """
    Turn a contextual response into per-fragment results.

    A blank response yields an empty string for every fragment; anything else
    is split and reconciled.
    """
    if not text or not text.strip():
        return {index: "" for index in range(expected_count)}

    return to_record(reconcile(expected_count, split(text, delimiter)))
