from __future__ import annotations

def norm_path(p: str) -> str:
    """Normalize archive paths to a canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Strip leading/trailing slashes (absolute names become relative)
    - Remove empty and '.' segments
    - Reject '..' segments and NUL bytes

    Returns "" for names that refer to the archive root itself (".", "./").
    """
    if "\x00" in p:
        raise ValueError("Path may not contain NUL")
    p = p.replace("\\", "/").strip("/")
    parts = [q for q in p.split("/") if q not in ("", ".")]
    for q in parts:
        if q == "..":
            raise ValueError("Path may not contain '..'")
    return "/".join(parts)
