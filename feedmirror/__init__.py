"""feedmirror - replicate ingested feed posts across independent SQL backends."""

__version__ = "0.1.0"
