"""
Ferry — streaming file transfer to HTTP blob storage.

Features:

- Container stream with a 2-byte flag header declaring which transforms were applied.
- Optional tar archiving of many files/directories into one stream.
- Optional gzip compression and AES-256-OFB encryption; the salted variant is
  byte-compatible with ``openssl enc -md sha256`` key derivation.
- SHA-256 checksum of exactly the bytes that cross the transport.
- Encoding and uploading overlap through a bounded pipe, so payload size is not
  limited by memory.

The wire order is fixed: header, then ciphertext of the gzip of the tar (or raw)
payload. Decoding reads the header and peels the layers in reverse.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "header",
    "encryption",
    "codec",
    "archive",
    "streams",
    "pipeline",
    "transfer",
    "transport",
    "walk",
    "config",
    "pipe",
    "progressbar",
    "errors",
    "cli",
]

# Programmatic API: ferry.pipeline.encode/decode for container streams and
# ferry.transfer.put/get for whole transfers; ferry.cli wraps both.
