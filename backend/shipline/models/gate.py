from pydantic import BaseModel, ConfigDict


class GateDecision(BaseModel):
    """Allow or deny, with the gate name and a human-readable reason."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    gate: str
    reason: str = ""

    @classmethod
    def allow(cls, gate: str, reason: str = "") -> "GateDecision":
        return cls(allowed=True, gate=gate, reason=reason)

    @classmethod
    def deny(cls, gate: str, reason: str) -> "GateDecision":
        return cls(allowed=False, gate=gate, reason=reason)
