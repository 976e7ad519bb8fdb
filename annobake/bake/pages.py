from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from annobake.types import Annotation, BakeWarning, WarningCode


logger = logging.getLogger(__name__)


def resolve_page_index(page_number: int, page_count: int) -> int:
    """Clamp a recorded zero-based page number into ``[0, page_count - 1]``.

    No page offset is applied; stale or corrupt numbers land on the nearest
    valid page instead of being dropped.
    """
    if page_count <= 0:
        return -1
    return max(0, min(int(page_number), page_count - 1))


def group_by_page(
    annotations: Iterable[Annotation],
    page_count: int,
    *,
    warnings: list[BakeWarning] | None = None,
) -> dict[int, list[Annotation]]:
    grouped: dict[int, list[Annotation]] = defaultdict(list)
    for annotation in annotations:
        page_index = resolve_page_index(annotation.page_number, page_count)
        if page_index != annotation.page_number:
            logger.debug(
                'Annotation %s page %s clamped to %s (page_count=%s)',
                annotation.id,
                annotation.page_number,
                page_index,
                page_count,
            )
        grouped[page_index].append(annotation)

    resolved: dict[int, list[Annotation]] = {}
    for page_index in sorted(grouped):
        items = grouped[page_index]
        if 0 <= page_index < page_count:
            resolved[page_index] = items
            continue
        for annotation in items:
            reason = f'page {annotation.page_number} cannot be resolved in a {page_count}-page document'
            logger.warning('Skipping annotation %s: %s', annotation.id, reason)
            if warnings is not None:
                warnings.append(
                    BakeWarning(
                        annotation_id=annotation.id,
                        page_index=None,
                        code=WarningCode.page_out_of_range,
                        reason=reason,
                    )
                )
    return resolved
