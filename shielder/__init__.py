"""
Shielder client engine

Client side of a shielded-pool protocol:
- Account state model and on-chain synchronization
- Transition building with proof self-verification
- Confidential remote proving in a TEE
"""
