"""Pearanoid vault data model; the session lives in ``pearanoid.vault.session``."""

from pearanoid.vault.models import CredentialEntry, Vault, extract_sections

__all__ = ["CredentialEntry", "Vault", "extract_sections"]
