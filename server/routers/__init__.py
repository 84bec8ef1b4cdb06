"""API routers for the gamification service."""
