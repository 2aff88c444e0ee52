# src/storage/base_image_store.py
"""Abstract image store: copies a remote image into durable hosting."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel


class StoredImage(BaseModel):
    source_url: str
    public_url: str
    content_type: str = "image/jpeg"
    size_bytes: int = 0


class BaseImageStore(ABC):
    """Uploads images fetched from third-party sites."""

    @abstractmethod
    async def store(self, image_url: str) -> StoredImage:
        """Fetch ``image_url`` and persist it. Raises on failure."""
