"""Token minting and credential generation."""

from basestack.auth.credentials import CredentialSet, generate_random_string, mint_role_tokens
from basestack.auth.tokens import Token, TokenSigner, decode, mint, verify

__all__ = [
    "CredentialSet",
    "Token",
    "TokenSigner",
    "decode",
    "generate_random_string",
    "mint",
    "mint_role_tokens",
    "verify",
]
