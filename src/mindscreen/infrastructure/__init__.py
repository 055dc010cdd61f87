"""Infrastructure layer: logging, hashing, timer scheduling and storage backends."""
