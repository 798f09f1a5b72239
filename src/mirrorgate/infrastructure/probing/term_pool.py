"""Fixed pool of probe search terms.

Mixes plain popular queries with Unicode, multi-word and odd-shaped
input so that probes catch instances that only handle the happy path.
"""

from __future__ import annotations

import random

TERM_POOL: tuple[str, ...] = (
    # typical
    "music",
    "lofi hip hop",
    "news today",
    "minecraft",
    "cooking pasta",
    "linux tutorial",
    # unicode
    "café del mar",
    "東京",
    "naïve",
    "Ёлка",
    "موسيقى",
    "🎵 playlist",
    # whitespace / shape
    "  leading space",
    "trailing space  ",
    "multi   space   query",
    "a",
    "rock & roll",
    "C++ tutorial",
    "100% real",
    "\"quoted phrase\"",
)


def draw_terms(
    count: int,
    *,
    rng: random.Random | None = None,
    pool: tuple[str, ...] = TERM_POOL,
) -> list[str]:
    """Draw *count* distinct terms from *pool* without replacement.

    *count* is clamped to the pool size.
    """
    rng = rng or random.Random()  # noqa: S311
    return rng.sample(pool, k=max(0, min(count, len(pool))))
