from __future__ import annotations

import json

import pytest

import app.core.security as security
from app.core.auth import Principal, PrincipalType, parse_machine_credentials


def test_role_resolution_uses_only_app_metadata_for_elevated_roles() -> None:
    role = security._resolve_human_role(
        {
            "id": "user-1",
            "app_metadata": {},
            "user_metadata": {"role": "moderator"},
        }
    )
    assert role == "user"


def test_role_resolution_supports_app_metadata_roles_array() -> None:
    role = security._resolve_human_role(
        {
            "id": "moderator-1",
            "app_metadata": {"roles": ["moderator", "user"]},
        }
    )
    assert role == "moderator"


def test_role_resolution_prefers_admin_in_roles_array() -> None:
    role = security._resolve_human_role({"id": "admin-1", "app_metadata": {"roles": ["moderator", "admin"]}})
    assert role == "admin"


def test_role_resolution_ignores_unknown_role() -> None:
    assert security._resolve_human_role({"id": "user-1", "app_metadata": {"role": "superuser"}}) == "user"
    assert security._resolve_human_role({"id": "user-1", "app_metadata": None}) == "user"


def test_principal_require_scopes_reports_missing_scopes() -> None:
    principal = Principal(principal_type=PrincipalType.HUMAN, subject="user-1", scopes={"catalog:read"})

    principal.require_scopes({"catalog:read"})
    with pytest.raises(PermissionError, match="moderation:write"):
        principal.require_scopes({"catalog:read", "moderation:write"})


def test_parse_machine_credentials_groups_by_module() -> None:
    raw = json.dumps(
        [
            {"module_id": "intake", "key_hash": "AB" * 32, "scopes": ["postings:write"]},
            {"module_id": "intake", "key_hash": "cd" * 32, "scopes": ["postings:write", "moderation:evaluate"]},
            {"module_id": "readonly", "key_hash": "ef" * 32},
        ]
    )

    credentials = parse_machine_credentials(raw)

    assert sorted(credentials) == ["intake", "readonly"]
    assert [record.key_hash for record in credentials["intake"]] == ["ab" * 32, "cd" * 32]
    assert credentials["readonly"][0].scopes == []


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_parse_machine_credentials_treats_unset_as_empty(raw: str | None) -> None:
    assert parse_machine_credentials(raw) == {}


@pytest.mark.parametrize(
    ("raw", "message"),
    [
        ("not json", "valid JSON"),
        ('{"module_id": "intake"}', "JSON list"),
        ('["intake"]', "must be an object"),
        (json.dumps([{"module_id": "", "key_hash": "ab" * 32}]), "requires module_id"),
        (json.dumps([{"module_id": "intake", "key_hash": "local-intake-key"}]), "hex sha256"),
        (json.dumps([{"module_id": "intake", "key_hash": "ab" * 32, "scopes": "postings:write"}]), "scopes"),
        (json.dumps([{"module_id": "intake", "key_hash": "ab" * 32, "scopes": ["postings:write", ""]}]), "scopes"),
    ],
)
def test_parse_machine_credentials_rejects_malformed_documents(raw: str, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        parse_machine_credentials(raw)
