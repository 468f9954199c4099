"""
Booking & Ticketing Module

Booking lifecycle for ferry trips:

- Online and walk-in booking creation with server-side fees
- Payment confirmation and ticket number assignment
- Manual and per-ticket check-in and boarding
- Reschedule to another trip with an audited fee
- Staff refunds and the passenger refund request workflow

Key Components:
- state_machine.py: Legal booking status transitions
- booking_service.py: Creation, payment, check-in and spam removal
- reschedule_service.py: Moves a booking between trips in one transaction
- refund_service.py: Refunds and refund request workflow
- ticket_service.py: Ticket numbers and QR payload validation
- router.py: FastAPI endpoints for bookings and refunds
- schemas.py: Pydantic models for booking requests and responses

Submodules are imported directly; the trip inventory depends on the state
machine, so this package does not import its submodules eagerly.
"""
