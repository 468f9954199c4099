"""Ferry ticketing platform: trips, seat inventory, bookings, fares and passenger restrictions."""
