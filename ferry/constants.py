from . import __version__


# OpenSSL salted-stream preamble: "Salted__" + 8-byte salt
SALT_MAGIC = b"Salted__"
SALT_SIZE = 8

KEY_SIZE = 32  # AES-256
BLOCK_SIZE = 16  # AES block size, also the IV size

# Container header: one little-endian u16
HEADER_SIZE = 2

FLAG_COMPRESSED = 1 << 0
FLAG_ENCRYPTED = 1 << 1
FLAG_ARCHIVED = 1 << 2
FLAG_UNSALTED = 1 << 3  # encrypted with a clear random IV instead of Salted__
FLAG_MASK = FLAG_COMPRESSED | FLAG_ENCRYPTED | FLAG_ARCHIVED | FLAG_UNSALTED


DEFAULT_CHUNK_SIZE = 65536
DEFAULT_PIPE_DEPTH = 16  # chunks buffered between producer and upload
DEFAULT_COMPRESS_LEVEL = 6

DEFAULT_BASE_URL = "https://transfer.sh"
DEFAULT_ARCHIVE_NAME = "archive.tar"
DEFAULT_TIMEOUT = 60.0

USER_AGENT = f"ferry/{__version__}"
