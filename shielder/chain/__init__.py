"""Ledger collaborators: contract reader, relayer and an in-memory chain"""
