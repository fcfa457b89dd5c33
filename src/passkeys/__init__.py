"""WebAuthn relying-party engine.

Challenge issue and consumption, attestation/assertion verification,
counter policy and the ceremony state machine. Storage and identity are
reached through the protocols in :mod:`src.passkeys.ports`.
"""
