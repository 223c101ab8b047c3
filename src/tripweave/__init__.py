"""tripweave - AI content generation for travel photo albums.

Stories, photo books, slideshow videos, photo analysis and privacy
anonymization from trip photos, with deterministic local fallbacks when the
Gemini model is not available.
"""

__version__ = "0.4.0"

from tripweave.core.models import Album, Photo, Trip

__all__ = ["__version__", "Album", "Photo", "Trip"]
