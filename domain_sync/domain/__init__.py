"""
domain_sync.domain — Canonical data models and enumerations.

Source-of-truth types shared by the fetcher, detector, queue and
dispatcher. Nothing in here imports from other domain_sync sub-packages
(only stdlib / third-party Pydantic).
"""
