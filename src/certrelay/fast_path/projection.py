"""
Projection of certstream events onto the compact record published to the bus.
"""

import json
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from ..errors import ProjectionError, SerializationError

CERTIFICATE_UPDATE = "certificate_update"

LEAF_CERT = ("data", "leaf_cert")


@dataclass
class CertRecord:
    """
    Information about an issued leaf certificate and its issuer.

    Nothing about the trust chain above the issuer is kept. Field names and
    integer encoding are part of the downstream wire contract.
    """

    domains: List[str] = field(default_factory=list)
    not_before: int = 0
    not_after: int = 0
    serial_number: str = ""
    fingerprint: str = ""
    issuer_cn: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        """Encode as a compact JSON object in field order."""
        try:
            return json.dumps(self.to_dict(), separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Couldn't serialize record: {e}") from e

    def to_bytes(self) -> bytes:
        return self.to_json().encode("utf-8")


def _lookup(event: Any, *path: str) -> Any:
    node = event
    for depth, key in enumerate(path):
        if not isinstance(node, dict) or key not in node:
            raise ProjectionError(
                ProjectionError.FIELD_MISSING,
                f"no value at {'.'.join(path[: depth + 1])}",
                path=".".join(path),
            )
        node = node[key]
    return node


def _missing(path: tuple, expected: str) -> ProjectionError:
    dotted = ".".join(path)
    return ProjectionError(
        ProjectionError.FIELD_MISSING, f"{dotted} is not {expected}", path=dotted
    )


def _string(event: Any, *path: str) -> str:
    value = _lookup(event, *path)
    if not isinstance(value, str):
        raise _missing(path, "a string")
    return value


def _integer(event: Any, *path: str) -> int:
    value = _lookup(event, *path)
    # bool is an int subclass; JSON true/false is not a timestamp
    if isinstance(value, bool):
        raise _missing(path, "an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return int(value)
    raise _missing(path, "an integer")


def _strings(event: Any, *path: str) -> List[str]:
    value = _lookup(event, *path)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _missing(path, "an array of strings")
    return list(value)


def project(event: Any) -> CertRecord:
    """
    Project a decoded certstream event onto a CertRecord.

    Pure function of its input. Checks run in a fixed order and the first
    failure wins, so the reported path is the first one missing.

    Raises:
        ProjectionError: with reason UnknownType when message_type is not
            certificate_update, or FieldMissing when a required path is
            absent or has the wrong shape.
    """
    message_type = _string(event, "message_type")
    if message_type != CERTIFICATE_UPDATE:
        raise ProjectionError(
            ProjectionError.UNKNOWN_TYPE,
            f"Encountered unknown message type {message_type}",
        )

    return CertRecord(
        domains=_strings(event, *LEAF_CERT, "all_domains"),
        not_before=_integer(event, *LEAF_CERT, "not_before"),
        not_after=_integer(event, *LEAF_CERT, "not_after"),
        serial_number=_string(event, *LEAF_CERT, "serial_number"),
        fingerprint="",
        issuer_cn=_string(event, *LEAF_CERT, "issuer", "aggregated"),
    )
