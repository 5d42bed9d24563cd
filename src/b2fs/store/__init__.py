"""Store clients for b2fs."""

from typing import TYPE_CHECKING

from b2fs.store.backend import StoreClient

if TYPE_CHECKING:
    from b2fs.config import B2FSConfig

__all__ = ["StoreClient", "create_store_client"]


def create_store_client(config: "B2FSConfig") -> StoreClient:
    """Create a store client based on configuration.

    Args:
        config: The full b2fs configuration.

    Returns:
        An uninitialized StoreClient; call ``init()`` before use.

    Raises:
        ValueError: If the configured backend is unknown.
    """
    backend = config.store.backend
    if backend == "b2":
        from b2fs.store.b2 import B2StoreClient

        return B2StoreClient(
            key_id=config.b2.key_id,
            application_key=config.b2.application_key,
            bucket_name=config.b2.bucket,
            api_url=config.b2.api_url,
            timeout=config.b2.timeout,
        )
    if backend == "memory":
        from b2fs.store.memory import MemoryStoreClient

        return MemoryStoreClient(min_part_size=config.upload.min_part_size)
    raise ValueError(f"Unknown store backend: {backend}")
