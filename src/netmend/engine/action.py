"""Action: a named probe paired with the remediation that satisfies it."""
from dataclasses import dataclass
from typing import Callable

from .schema import Verdict


@dataclass(frozen=True)
class Action:
    """An atomic unit of reconciliation work.

    Attributes:
        name: Identifier shown in the report (e.g. "disable-offload:eth0")
        probe: Inspects the host without mutating it and returns a Verdict.
            May raise if inspection itself fails.
        remediate: Brings the host to the desired state. Raises on failure;
            may run several sub-steps, each of which is skipped when its own
            part of the state already holds.

    An action must not rely on another action having run: every probe looks
    at the live host, never at in-memory flags.
    """
    name: str
    probe: Callable[[], Verdict]
    remediate: Callable[[], None]

    def __str__(self) -> str:
        return self.name
