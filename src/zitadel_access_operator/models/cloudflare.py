"""
Request and response models for the Cloudflare Access API (v4).

Field names follow the snake_case JSON used by the API.
"""

from pydantic import BaseModel, Field

from ..constants import (
    ACCESS_APP_TYPE,
    ACCESS_POLICY_DECISION,
    ACCESS_POLICY_NAME,
    ACCESS_POLICY_PRECEDENCE,
)


class AccessApp(BaseModel):
    model_config = {"extra": "ignore"}

    id: str
    name: str = ""
    domain: str = ""
    type: str = ""
    session_duration: str = ""

    def matches(self, request: "AccessAppRequest") -> bool:
        """True when an update with this request would change nothing."""
        return (
            self.name == request.name
            and self.domain == request.domain
            and self.type == request.type
            and self.session_duration == request.session_duration
        )


class AccessAppRequest(BaseModel):
    name: str
    domain: str
    type: str = ACCESS_APP_TYPE
    session_duration: str


class OIDCClaimRule(BaseModel):
    """Inline rule matching one token claim name/value pair."""

    identity_provider_id: str
    claim_name: str
    claim_value: str


class OIDCRuleInclude(BaseModel):
    oidc: OIDCClaimRule


class AccessPolicyRequest(BaseModel):
    """A single allow decision over an ordered list of OIDC claim rules."""

    name: str = ACCESS_POLICY_NAME
    decision: str = ACCESS_POLICY_DECISION
    precedence: int = ACCESS_POLICY_PRECEDENCE
    include: list[OIDCRuleInclude] = Field(default_factory=list)

    @classmethod
    def from_rules(cls, rules: list[OIDCClaimRule]) -> "AccessPolicyRequest":
        return cls(include=[OIDCRuleInclude(oidc=rule) for rule in rules])

    @property
    def rules(self) -> list[OIDCClaimRule]:
        return [entry.oidc for entry in self.include]


class AccessPolicy(BaseModel):
    model_config = {"extra": "ignore"}

    id: str
    name: str = ""
    decision: str = ""
    precedence: int | None = None
    include: list[dict] = Field(default_factory=list)

    def claim_rules(self) -> list[OIDCClaimRule]:
        """OIDC claim rules of the include list; other rule kinds are skipped."""
        rules = []
        for entry in self.include:
            oidc = entry.get("oidc") if isinstance(entry, dict) else None
            if oidc:
                rules.append(OIDCClaimRule.model_validate(oidc))
        return rules

    def matches(self, request: AccessPolicyRequest) -> bool:
        """True when the policy already carries exactly the requested rule set."""
        return (
            self.name == request.name
            and self.decision == request.decision
            and self.precedence == request.precedence
            and len(self.include) == len(request.include)
            and self.claim_rules() == request.rules
        )
