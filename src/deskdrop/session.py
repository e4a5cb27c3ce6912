"""Owner identity for the current device."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class OwnerSession(BaseModel):
    """Who is using this device.

    There is no authentication behind this: the name is whatever the user
    typed when placing their last order, and it is only used to pick
    their ownership records and to decide whether an update is theirs.

    Parameters
    ----------
    owner_name : str
        Free-text name entered at order time.
    owner_phone : str
        Free-text phone number entered at order time.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    owner_name: str = ""
    owner_phone: str = ""

    @property
    def is_anonymous(self) -> bool:
        """No name recorded yet, so nothing can be "mine"."""
        return not self.owner_name
