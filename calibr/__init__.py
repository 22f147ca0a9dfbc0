"""
Calibr Attestations

Verifiable, tamper-evident forecast claims with three disclosure levels:
- ON_CHAIN: full claim data attested on an EAS-compatible chain
- OFF_CHAIN: wallet-signed claim, no chain write
- PRIVATE: only a Merkle root goes on-chain; fields are revealed selectively
"""

__version__ = "0.1.0"
