"""Burn-and-mint bridge saga, attestation polling and request validation."""
