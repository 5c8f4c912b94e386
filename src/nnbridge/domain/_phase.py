"""
Network phase selector.

A network is built either for training or for inference. The phase decides
which layers of a definition are instantiated (layers may be restricted to a
phase with an `include` rule) and is fixed for the lifetime of the network.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Union


class Phase(IntEnum):
    """
    Network phase.

    The integer values match the conventional wire values (TRAIN = 0,
    TEST = 1) so that phases given as plain integers keep working.
    """

    TRAIN = 0
    TEST = 1

    @classmethod
    def coerce(cls, value: Union["Phase", int, str]) -> "Phase":
        """
        Normalize a user-supplied phase selector.

        Parameters
        ----------
        value : Phase | int | str
            A `Phase`, its integer value, or a case-insensitive name
            ("train" / "test").

        Returns
        -------
        Phase
            The normalized phase.

        Raises
        ------
        ValueError
            If the value does not name a known phase.
        """
        if isinstance(value, Phase):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown phase {value!r}") from None
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Unknown phase {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown phase {value!r}") from None


TRAIN = Phase.TRAIN
TEST = Phase.TEST
