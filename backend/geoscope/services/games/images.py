import random
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class Image:
    id: str
    url: str
    lat: float
    lon: float
    location: Optional[str] = None


DEFAULT_IMAGES = (
    Image('img1', 'https://images.unsplash.com/photo-1469474968028-56623f02e42e?w=1200&h=800&fit=crop',
          46.2044, 6.1432, 'Geneva, Switzerland'),
    Image('img2', 'https://images.unsplash.com/photo-1513635269975-59663e0ac1ad?w=1200&h=800&fit=crop',
          51.5074, -0.1278, 'London, UK'),
    Image('img3', 'https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=1200&h=800&fit=crop',
          40.7128, -74.0060, 'New York, USA'),
    Image('img4', 'https://images.unsplash.com/photo-1502602898536-47ad22581b52?w=1200&h=800&fit=crop',
          35.6762, 139.6503, 'Tokyo, Japan'),
    Image('img5', 'https://images.unsplash.com/photo-1571115177098-24ec42ed204d?w=1200&h=800&fit=crop',
          -33.8688, 151.2093, 'Sydney, Australia'),
)


class ImageCatalog:
    """Source of round targets. Swap in a real image provider in production."""

    def __init__(self, images: Sequence[Image] = DEFAULT_IMAGES):
        if not images:
            raise ValueError('ImageCatalog needs at least one image')
        self.images = list(images)

    def random_image(self) -> Image:
        return random.choice(self.images)
