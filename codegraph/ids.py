"""
Deterministic identifiers for graph nodes and relationships.

Every id is a namespace token, a sanitized readable segment and a short hash
of a canonical key. The key always contains the file path when one is known so
that same-named symbols in different files get different ids.

Two hash schemes are available:

* ``legacy``  - the two rolling 32-bit hashes used by graphs persisted by the
  earlier TypeScript tooling. Kept bit-for-bit so re-imports upsert onto the
  existing nodes instead of duplicating them.
* ``blake2b`` - a 64-bit blake2b digest. Default for new graphs.
"""

import hashlib
import re
from typing import Optional

from .config import settings
from .types import NodeType, RelationType

_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_]")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

LEGACY_HASH_LENGTH = 10


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    value = abs(value)
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return sign + "".join(reversed(digits))


def _utf16_units(text: str):
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def legacy_hash(text: str) -> str:
    """Two-hash scheme with JavaScript int32 semantics, base36, 10 chars."""
    hash1 = 0
    hash2 = 0
    for char in _utf16_units(text):
        hash1 = _to_int32(_to_int32(hash1 << 5) - hash1 + char)
        hash2 = _to_int32(_to_int32(_to_int32(hash2 << 3) + hash2) ^ char)

    high = _to_int32(_to_int32(abs(hash1)) << 16)
    low = _to_int32(abs(hash2)) & 0xFFFF
    combined = _to_int32(high | low)
    return _base36(combined)[:LEGACY_HASH_LENGTH]


def blake2b_hash(text: str) -> str:
    """64-bit blake2b digest of the key, base36 encoded."""
    digest = hashlib.blake2b(text.encode("utf-8"), digest_size=8).digest()
    return _base36(int.from_bytes(digest, "big"))


def short_hash(text: str, scheme: Optional[str] = None) -> str:
    scheme = scheme or settings.id_hash_scheme
    if scheme == "legacy":
        return legacy_hash(text)
    if scheme == "blake2b":
        return blake2b_hash(text)
    raise ValueError(f"Unsupported id hash scheme: {scheme}")


def safe_name(value: str) -> str:
    """Replace characters outside [a-zA-Z0-9-_] with underscores."""
    return _UNSAFE.sub("_", value)


class NodeIdGenerator:
    """Namespace-specific node id builders."""

    def __init__(self, scheme: Optional[str] = None):
        self.scheme = scheme

    def _hash(self, key: str) -> str:
        return short_hash(key, self.scheme)

    def package(self, name: str) -> str:
        return f"package:{safe_name(name)}"

    def file(self, package_name: str, file_path: str) -> str:
        return f"file:{safe_name(package_name)}_{self._hash(file_path)}"

    def api(self, package_name: str, api_name: str, api_type: str,
            file_path: Optional[str] = None) -> str:
        key = f"{file_path}:{api_name}" if file_path else f"{package_name}:{api_name}"
        return f"api:{safe_name(package_name)}_{api_type}_{safe_name(api_name)}_{self._hash(key)}"

    def document(self, file_path: str) -> str:
        return f"doc:{self._hash(file_path)}"

    def schema_entity(self, name: str) -> str:
        return f"schema:{safe_name(name)}"

    def schema_field(self, entity_name: str, field_name: str) -> str:
        return f"field:{safe_name(entity_name)}_{safe_name(field_name)}"

    def import_(self, package_name: str, source: str, imported: str, file_path: str) -> str:
        key = f"{file_path}:{source}:{imported}"
        return f"import:{safe_name(package_name)}_{self._hash(key)}"

    def export(self, package_name: str, exported: str, file_path: str) -> str:
        key = f"{file_path}:{exported}"
        return f"export:{safe_name(package_name)}_{self._hash(key)}"

    def node_id(self, kind: NodeType, package_name: str, name: str,
                extra: Optional[dict] = None) -> str:
        """Dispatch on node kind.

        ``extra`` may carry ``file_path``, ``api_type``, ``source``,
        ``imported`` and ``entity`` depending on the kind.
        """
        extra = extra or {}
        file_path = extra.get("file_path")

        if kind == NodeType.PACKAGE:
            return self.package(name)
        if kind == NodeType.FILE:
            return self.file(package_name, file_path or name)
        if kind == NodeType.DOCUMENT:
            return self.document(file_path or name)
        if kind == NodeType.SCHEMA_ENTITY:
            return self.schema_entity(name)
        if kind == NodeType.SCHEMA_FIELD:
            return self.schema_field(extra.get("entity", ""), name)
        if kind == NodeType.IMPORT:
            return self.import_(package_name, extra.get("source", ""), name, file_path or "")
        if kind == NodeType.EXPORT:
            return self.export(package_name, name, file_path or "")

        api_type = extra.get("api_type") or kind.value.lower()
        return self.api(package_name, name, api_type, file_path)


def relationship_id(rel_type: RelationType, source_id: str, target_id: str) -> str:
    type_value = rel_type.value if isinstance(rel_type, RelationType) else str(rel_type)
    return f"{type_value.lower()}:{source_id}_{target_id}"


node_ids = NodeIdGenerator()
