"""
Pydantic models for ledger inputs.

Callers hand the ledger plain mappings (often decoded straight from the
external registry) or these models.  Validating at the service boundary gives:
- Type checking and conversion (epoch ids arriving as strings, etc.)
- One place that defines what a revocation or a verification request is
- Clear errors that the services log before returning a fail-soft result
"""

from pydantic import BaseModel, Field

# ============================================================================
# REVOCATION INPUTS
# ============================================================================


class RevocationItem(BaseModel):
    """
    A confirmed revocation to record, alone or as part of a batch.

    Attributes:
        credential_id: Credential identifier (non-empty)
        epoch_id: Epoch under which the external commit happened (>= 0)
        issuer_id: Issuer that revoked the credential
        prime_value: Accumulator-domain encoding of the credential as reported
            by the external registry (opaque; usually a decimal string); empty
            when the registry did not report one
    """

    credential_id: str = Field(min_length=1)
    epoch_id: int = Field(ge=0)
    issuer_id: str
    prime_value: str = ""


# ============================================================================
# VERIFICATION INPUTS
# ============================================================================


class CredentialCheck(BaseModel):
    """
    One entry of a batch verification request.

    Attributes:
        id: Credential identifier
        epoch: Issuance epoch the filter was consulted for
        possibly_revoked: Filter verdict (True means "possibly revoked")
    """

    id: str = Field(min_length=1)
    epoch: int = Field(ge=0)
    possibly_revoked: bool
