"""Meeting scheduling core: availability, bookings and calendar sync."""
