from workflow_events.credentials.issuer import (
    CredentialIssuer,
    IssuedCredential,
    LocalCredentialIssuer,
    UnavailableCredentialIssuer,
    api_key_authorization,
    parse_api_key_authorization,
)
from workflow_events.credentials.vault import CredentialVault, RedisCredentialVault, UnavailableCredentialVault

__all__ = [
    "CredentialIssuer",
    "CredentialVault",
    "IssuedCredential",
    "LocalCredentialIssuer",
    "RedisCredentialVault",
    "UnavailableCredentialIssuer",
    "UnavailableCredentialVault",
    "api_key_authorization",
    "parse_api_key_authorization",
]
