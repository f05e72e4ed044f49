import json
import re
from dataclasses import dataclass
from enum import Enum

ROLE_SCOPES: dict[str, set[str]] = {
    "user": {"catalog:read", "submission:write"},
    "moderator": {"catalog:read", "submission:write", "moderation:read", "moderation:write"},
    "admin": {"catalog:read", "submission:write", "moderation:read", "moderation:write", "admin:write"},
}
ELEVATED_ROLES = {"moderator", "admin"}

_SHA256_HEX_RE = re.compile(r"[0-9a-fA-F]{64}")


class PrincipalType(str, Enum):
    HUMAN = "human"
    MACHINE = "machine"


@dataclass(slots=True)
class Principal:
    principal_type: PrincipalType
    subject: str
    scopes: set[str]
    role: str | None = None
    actor_id: str | None = None

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


@dataclass(slots=True)
class MachineCredentialRecord:
    module_id: str
    key_hash: str
    scopes: list[str]


def parse_machine_credentials(raw: str | None) -> dict[str, list[MachineCredentialRecord]]:
    """Parse ``[{"module_id", "key_hash", "scopes"}]`` into records keyed by module id.

    ``key_hash`` is the hex sha256 of the module's API key. Raises ``ValueError``
    on malformed input; settings validation calls this so a bad document fails
    at startup.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        document = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"machine credentials must be valid JSON: {exc.msg}") from exc
    if not isinstance(document, list):
        raise ValueError("machine credentials must be a JSON list")

    credentials: dict[str, list[MachineCredentialRecord]] = {}
    for index, entry in enumerate(document):
        if not isinstance(entry, dict):
            raise ValueError(f"machine credential {index} must be an object")
        module_id = entry.get("module_id")
        key_hash = entry.get("key_hash")
        scopes = entry.get("scopes", [])
        if not isinstance(module_id, str) or not module_id.strip():
            raise ValueError(f"machine credential {index} requires module_id")
        if not isinstance(key_hash, str) or not _SHA256_HEX_RE.fullmatch(key_hash):
            raise ValueError(f"machine credential {index} key_hash must be a hex sha256 digest")
        if not isinstance(scopes, list) or not all(isinstance(scope, str) and scope for scope in scopes):
            raise ValueError(f"machine credential {index} scopes must be a list of non-empty strings")
        credentials.setdefault(module_id, []).append(
            MachineCredentialRecord(module_id=module_id, key_hash=key_hash.lower(), scopes=list(scopes))
        )
    return credentials
