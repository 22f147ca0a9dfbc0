"""Core attestation subsystems: Merkle commitments and attestation modes."""
