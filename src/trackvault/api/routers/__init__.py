"""API routers for trackvault."""
