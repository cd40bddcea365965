"""
File-backed metadata cache for adapter `build_metadata` methods.

Layout:
    <cache_dir>/<protocol>/<product>/<chain>.<file_key>.json

The JSON file maps protocol token address -> {"protocolToken": ..., "underlyingToken": ...}.
A present file is served as-is; otherwise the metadata is built from chain,
written atomically, and returned. On top of the file, the result is kept on the
adapter instance so it is populated at most once per process.
"""

from __future__ import annotations

import functools
import json
import logging
import os
from pathlib import Path
from typing import Optional

from .types import Metadata, PoolMetadata

logger = logging.getLogger(__name__)


def metadata_path(cache_dir: Path, protocol: str, product: str, chain: str, file_key: str) -> Path:
    return Path(cache_dir) / protocol / product / f"{chain}.{file_key}.json"


def load_metadata(path: Path) -> Optional[Metadata]:
    if not path.exists():
        return None
    with open(path) as f:
        raw = json.load(f)
    return {address: PoolMetadata.from_dict(entry) for address, entry in raw.items()}


def write_metadata_atomic(path: Path, metadata: Metadata) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {address: metadata[address].to_dict() for address in sorted(metadata)}
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2))
    os.replace(tmp, path)


def cache_to_file(file_key: str):
    """
    Decorate an adapter's async `build_metadata`.

    The adapter must expose `protocol_id`, `product_id`, `chain_id`, `cache_dir`
    (None disables the file), `_metadata_cache` and `_metadata_lock`.
    """
    def decorator(build):
        @functools.wraps(build)
        async def wrapper(self) -> Metadata:
            if self._metadata_cache is not None:
                return self._metadata_cache

            async with self._metadata_lock:
                # a concurrent caller may have populated it while we waited
                if self._metadata_cache is not None:
                    return self._metadata_cache

                path = None
                metadata = None
                if self.cache_dir is not None:
                    path = metadata_path(
                        self.cache_dir,
                        self.protocol_id.value,
                        self.product_id,
                        self.chain_id.slug,
                        file_key,
                    )
                    metadata = load_metadata(path)
                    if metadata is not None:
                        logger.debug(f"Metadata cache hit: {path}")

                if metadata is None:
                    metadata = await build(self)
                    if path is not None:
                        write_metadata_atomic(path, metadata)
                        logger.info(f"Wrote {len(metadata)} metadata entries to {path}")

                self._metadata_cache = metadata
                return metadata

        return wrapper

    return decorator
