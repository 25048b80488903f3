"""Request body compression and response compression negotiation.

Compressed responses are decoded transparently by httpx; this module only
announces the accepted encoding and compresses outgoing bodies.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from dataclasses import dataclass

from arangodriver.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

GZIP = "gzip"
DEFLATE = "deflate"


@dataclass(slots=True)
class CompressionConfig:
    """Compression settings; request and response sides toggle independently."""

    kind: str = GZIP
    level: int = 6
    request_enabled: bool = False
    response_enabled: bool = False

    def validate(self) -> list[str]:
        errors: list[str] = []
        if self.kind not in (GZIP, DEFLATE):
            errors.append(f"unsupported compression type: {self.kind}")
        if not -1 <= self.level <= 9:
            errors.append(f"compression level must be between -1 and 9, got {self.level}")
        return errors


def apply_request_headers(config: CompressionConfig | None, headers: dict[str, str]) -> None:
    """Announce the response encoding the client accepts."""
    if config is not None and config.response_enabled:
        headers["accept-encoding"] = config.kind


def compress_body(config: CompressionConfig | None, body: bytes, headers: dict[str, str]) -> bytes:
    """Compress ``body`` when request compression is enabled.

    Sets ``Content-Encoding`` on ``headers`` when the body was compressed.
    """
    if config is None or not config.request_enabled:
        return body
    if config.kind == GZIP:
        headers["content-encoding"] = GZIP
        return gzip.compress(body, compresslevel=config.level if config.level >= 0 else 9)
    if config.kind == DEFLATE:
        headers["content-encoding"] = DEFLATE
        return zlib.compress(body, config.level)
    logger.error("Unsupported compression type %s", config.kind)
    raise InvalidArgumentError(f"unsupported compression type: {config.kind}")


__all__ = [
    "CompressionConfig",
    "DEFLATE",
    "GZIP",
    "apply_request_headers",
    "compress_body",
]
