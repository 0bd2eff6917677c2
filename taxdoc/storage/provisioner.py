"""
Container Provisioner

Creates the source and destination containers ahead of the first event,
for local development against LocalStack / MinIO. Idempotent: containers
that already exist are reported, not recreated.

Usage:
    python -m taxdoc.storage.provisioner
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from taxdoc.core.config import Settings, settings as default_settings
from taxdoc.storage.base import BlobStore

logger = logging.getLogger(__name__)


class ContainerProvisioner:

    def __init__(self, store: BlobStore, cfg: Settings | None = None) -> None:
        self._store = store
        self._cfg = cfg or default_settings

    async def provision(self, containers: Iterable[str] | None = None) -> dict[str, bool]:
        """Returns container name → True if created by this call."""
        names = list(containers) if containers is not None else [
            self._cfg.source_container,
            self._cfg.destination_container,
        ]

        result: dict[str, bool] = {}
        for name in names:
            created = await self._store.create_container_if_absent(name)
            result[name] = created
            if created:
                logger.info("Container created | container=%s", name)
            else:
                logger.info("Container already exists | container=%s", name)
        return result


def main() -> None:
    from taxdoc.storage.s3 import S3BlobStore

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(ContainerProvisioner(S3BlobStore(default_settings)).provision())


if __name__ == "__main__":
    main()
