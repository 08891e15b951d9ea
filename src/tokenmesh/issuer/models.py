"""Wire models for the issuer HTTP surface and the callback payload."""

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TokenRequest(_WireModel):
    """Client-credentials grant request."""

    client_id: str = Field(..., min_length=1, alias="clientId")
    client_secret: str = Field(..., min_length=1, alias="clientSecret", repr=False)
    grant_type: Optional[str] = Field(default="client_credentials", alias="grantType")
    scope: Optional[str] = None


class TokenResponse(_WireModel):
    """An issued credential as returned to the requester and pushed to callbacks."""

    access_value: str = Field(
        ...,
        alias="accessValue",
        validation_alias=AliasChoices("accessValue", "accessToken", "access_value"),
    )
    token_type: str = Field(default="Bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn", ge=0)
    scope: Optional[str] = None
    issued_at: Optional[str] = Field(default=None, alias="issuedAt")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class CallbackRegistrationRequest(_WireModel):
    client_id: str = Field(..., min_length=1, alias="clientId")
    client_secret: str = Field(..., min_length=1, alias="clientSecret", repr=False)
    callback_url: str = Field(..., min_length=1, alias="callbackUrl")
    scopes: Optional[list[str]] = None


class CallbackRegistrationResponse(_WireModel):
    client_id: str = Field(..., alias="clientId")
    callback_url: str = Field(..., alias="callbackUrl")
    status: str
    message: str


class PublicKeyResponse(_WireModel):
    public_key: str = Field(..., alias="publicKey", description="Base64 DER SubjectPublicKeyInfo")
    algorithm: str = "EdDSA"
    key_id: str = Field(..., alias="keyId")


class RevokeTokenRequest(_WireModel):
    token: Optional[str] = None
    token_type_hint: Optional[str] = Field(default=None, alias="tokenTypeHint")


class RevokeTokenResponse(_WireModel):
    revoked: bool
    message: str
