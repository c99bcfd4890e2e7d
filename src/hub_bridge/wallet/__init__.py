"""Custodial wallet system for hub-bridge.

Provides the chain registry, read-only RPC access, the custody API client,
per-user wallet provisioning (one address on every supported chain) and the
executor that turns custody jobs into on-chain transaction hashes. Nothing
in this package holds a private key; every write is signed by custody.
"""
