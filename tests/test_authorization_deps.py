from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from starlette.requests import Request

from design_studio.deps import _extract_user_id, get_current_user, get_optional_user, require_role
from design_studio.services.auth import create_access_token
from design_studio.services.job_access import JobAccessService


def _build_request(path: str = "/jobs", method: str = "GET") -> Request:
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "query_string": b"",
        "headers": [],
        "path_params": {},
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
        "scheme": "http",
    }
    return Request(scope)


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_require_role_denies_other_roles():
    dependency = require_role(["admin"])

    with pytest.raises(HTTPException) as exc:
        dependency(request=_build_request("/vouchers"), user=SimpleNamespace(id=12, role="manager"))

    assert exc.value.status_code == 403
    assert exc.value.detail == "Forbidden"


def test_require_role_is_case_insensitive():
    user = SimpleNamespace(id=13, role=" Admin ")

    assert require_role(["admin"])(request=_build_request(), user=user) is user


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"sub": "42"}, 42),
        ({"sub": 7}, 7),
        ({"user_id": "9"}, 9),
        ({"sub": "abc"}, None),
        ({}, None),
    ],
)
def test_extract_user_id(payload, expected):
    assert _extract_user_id(payload) == expected


def test_get_current_user_requires_credentials(db):
    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), credentials=None, db=db)

    assert exc.value.status_code == 401
    assert exc.value.detail == "Unauthorized"


def test_get_current_user_rejects_garbage_and_unknown_users(db):
    with pytest.raises(HTTPException) as bad_token:
        get_current_user(request=_build_request(), credentials=_bearer("not-a-jwt"), db=db)
    with pytest.raises(HTTPException) as missing_user:
        get_current_user(request=_build_request(), credentials=_bearer(create_access_token(999)), db=db)

    assert bad_token.value.detail == "Invalid or expired token"
    assert missing_user.value.detail == "User not found"


def test_get_current_user_resolves_user_and_tags_request(db, make_user):
    user = make_user("designer")
    request = _build_request()

    resolved = get_current_user(request=request, credentials=_bearer(create_access_token(user.id)), db=db)

    assert resolved.id == user.id
    assert request.state.user is resolved


def test_expired_token_is_rejected(db, make_user):
    user = make_user()
    token = create_access_token(user.id, expires_minutes=-1)

    with pytest.raises(HTTPException) as exc:
        get_current_user(request=_build_request(), credentials=_bearer(token), db=db)

    assert exc.value.status_code == 401


def test_get_optional_user_allows_anonymous(db):
    assert get_optional_user(request=_build_request(), credentials=None, db=db) is None


@pytest.mark.parametrize(
    "role,client_id,designer_id,allowed",
    [
        ("client", 1, None, True),
        ("client", 2, None, False),
        ("designer", 2, 1, True),
        ("designer", 1, 3, False),
        ("manager", 2, 3, True),
        ("admin", 2, 3, True),
        ("", 1, 1, False),
    ],
)
def test_job_access_matrix(role, client_id, designer_id, allowed):
    user = SimpleNamespace(id=1, role=role)
    job = SimpleNamespace(id=10, client_id=client_id, designer_id=designer_id)

    assert JobAccessService.can_access(user, job) is allowed


def test_ensure_can_patch_allows_designer_status_change():
    designer = SimpleNamespace(id=5, role="designer")
    job = SimpleNamespace(id=10, client_id=1, designer_id=5)

    JobAccessService.ensure_can_patch(designer, job, ["status"])
