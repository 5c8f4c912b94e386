"""
Call-argument custodianship.

When an engine object keeps raw addresses into host buffers passed as call
arguments, the host object wrapping it becomes the *custodian* of those
buffers (the *wards*): they stay reachable from the custodian until a later
call through the same site replaces them, or the custodian itself goes away.

Edges are tracked per `(site, key)`. The site names the boundary call (for
example "input_arrays"), the key distinguishes independent receivers behind
the same call (for example the index of the receiving layer).

This is separate from the view-to-blob back-reference kept by exported
arrays (see `_ndarray`).
"""

from __future__ import annotations

import logging
from typing import Dict, Hashable, Tuple

logger = logging.getLogger(__name__)


class Custodian:
    """
    Table of ward edges owned by one host object.

    Examples
    --------
    >>> c = Custodian()
    >>> c.hold("input_arrays", 0, data, labels)
    >>> c.wards("input_arrays", 0) == (data, labels)
    True
    """

    __slots__ = ("_edges",)

    def __init__(self) -> None:
        self._edges: Dict[Tuple[str, Hashable], Tuple[object, ...]] = {}

    def hold(self, site: str, key: Hashable, *wards: object) -> None:
        """Keep `wards` alive, replacing any wards held for `(site, key)`."""
        previous = self._edges.get((site, key), ())
        self._edges[(site, key)] = tuple(wards)
        logger.debug(
            "Custodian edge %s[%r]: %d ward(s) held, %d released",
            site,
            key,
            len(wards),
            len(previous),
        )

    def release(self, site: str, key: Hashable) -> None:
        self._edges.pop((site, key), None)

    def wards(self, site: str, key: Hashable) -> Tuple[object, ...]:
        return self._edges.get((site, key), ())

    def __len__(self) -> int:
        return len(self._edges)
