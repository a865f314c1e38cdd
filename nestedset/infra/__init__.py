"""Infrastructure: logging and database session plumbing."""
