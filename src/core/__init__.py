"""
Core domain models, integer primitives, and contracts.

This module contains the foundational building blocks that are independent
of external systems (token services, storage, notification transports).
"""
