"""
Trips Module

Sailings generated from schedule slots and their per-channel seat counters.

Key Components:
- inventory.py: Conditional reserve/release and counter reconciliation
- service.py: Schedule-slot expansion, trip lifecycle and deletion
- router.py: FastAPI endpoints for trips and manifests
- schemas.py: Pydantic models and the booking channel enum
"""
