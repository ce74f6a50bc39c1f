"""Parsing of vendor boot configuration manifests (ESXi ``boot.cfg``).

A boot.cfg is a list of ``key=value`` lines. The installer needs the kernel
and module paths rewritten so they resolve against the HTTP repository rather
than the install media root, e.g. for repository ``http://host/esxi``::

    kernel=/tboot.b00              -> http://host/esxi/tboot.b00
    modules=/b.b00 --- /useropts.gz -> http://host/esxi/b.b00 --- http://host/esxi/useropts.gz

File names on official media are upper case (``BOOT.CFG``, ``TBOOT.B00``) but
repositories extracted from the ISO are frequently lower-cased, so the case of
every rewritten path follows the case of the manifest that was actually found.
"""
from typing import Dict, List, Tuple

BOOT_CFG_UPPER = "BOOT.CFG"
BOOT_CFG_LOWER = "boot.cfg"
MBOOT_UPPER = "MBOOT.C32"
MBOOT_LOWER = "mboot.c32"

# (option key, boot.cfg key including the delimiter)
BOOT_CFG_FIELDS: List[Tuple[str, str]] = [
    ("tbootFile", "kernel="),
    ("moduleFiles", "modules="),
]


def boot_cfg_url(repo: str, upper_case: bool) -> str:
    """Return the manifest URL for the requested naming convention."""
    return f"{repo}/{BOOT_CFG_UPPER if upper_case else BOOT_CFG_LOWER}"


def extract_value(data: str, pattern: str) -> str:
    """Return the text between ``pattern`` and the end of its line.

    Returns an empty string when the pattern does not occur. Unlike a strict
    newline-terminated read, a value on an unterminated final line is
    returned up to the end of ``data`` instead of as an empty string.

    >>> extract_value("key1=abc def\\nkey2=12xyz - pmq\\nkey3=pmq,abq", "key2=")
    '12xyz - pmq'
    """
    pos = data.find(pattern)
    if pos < 0:
        return ""
    pos += len(pattern)
    line_end = data.find("\n", pos)
    value = data[pos:] if line_end < 0 else data[pos:line_end]
    return value.rstrip("\r")


def extract_boot_cfg_data(file_data: str, upper_case: bool, repo: str) -> Dict[str, str]:
    """Extract the install options derived from a boot.cfg manifest.

    Args:
        file_data: Raw manifest text.
        upper_case: True when the manifest was fetched as ``BOOT.CFG``; every
            extracted path is then upper-cased, otherwise lower-cased.
        repo: Normalized repository URL (no trailing slash).

    Returns:
        Dictionary with ``tbootFile``, ``moduleFiles`` and ``mbootFile``.
    """
    result: Dict[str, str] = {}
    for key, pattern in BOOT_CFG_FIELDS:
        value = extract_value(file_data, pattern)
        value = value.upper() if upper_case else value.lower()
        result[key] = value.replace("/", repo + "/")

    result["mbootFile"] = f"{repo}/{MBOOT_UPPER if upper_case else MBOOT_LOWER}"
    return result
