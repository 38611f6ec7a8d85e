"""Tests for the GitHub App client"""
import json

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from app.core.exceptions import Unauthorized, UpstreamFailure
from app.services.github_app import GitHubAppClient, load_private_key


@pytest.fixture(scope="module")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


def make_client(private_key_pem, handler) -> GitHubAppClient:
    return GitHubAppClient(
        app_id="12345",
        private_key=private_key_pem,
        api_url="https://api.github.test",
        transport=httpx.MockTransport(handler),
    )


def test_app_jwt_claims(private_key_pem):
    client = make_client(private_key_pem, lambda request: httpx.Response(200))
    claims = jwt.get_unverified_claims(client.app_jwt())
    assert claims["iss"] == "12345"
    assert claims["exp"] - claims["iat"] == 660
    assert jwt.get_unverified_header(client.app_jwt())["alg"] == "RS256"


def test_private_key_accepts_escaped_newlines(private_key_pem):
    escaped = private_key_pem.replace("\n", "\\n")
    assert load_private_key(escaped) == private_key_pem


def test_private_key_from_file(private_key_pem, tmp_path):
    path = tmp_path / "app.pem"
    path.write_text(private_key_pem)
    assert load_private_key(str(path)) == private_key_pem


def test_private_key_missing():
    with pytest.raises(UpstreamFailure):
        load_private_key("/does/not/exist.pem")


@pytest.mark.asyncio
async def test_create_installation_token(private_key_pem):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(201, json={"token": "ghs_abc", "expires_at": "2030-01-19T16:51:53Z"})

    token, expires_at = await make_client(private_key_pem, handler).create_installation_token(99)

    assert token == "ghs_abc"
    assert expires_at.year == 2030
    assert expires_at.utcoffset().total_seconds() == 0
    assert seen["path"] == "/app/installations/99/access_tokens"
    assert seen["auth"].startswith("Bearer ")


@pytest.mark.asyncio
async def test_token_request_rejected(private_key_pem):
    def handler(request):
        return httpx.Response(401, json={"message": "Bad credentials"})

    with pytest.raises(UpstreamFailure):
        await make_client(private_key_pem, handler).create_installation_token(99)


@pytest.mark.asyncio
async def test_token_response_missing_fields(private_key_pem):
    def handler(request):
        return httpx.Response(201, json={"token": "ghs_abc"})

    with pytest.raises(UpstreamFailure):
        await make_client(private_key_pem, handler).create_installation_token(99)


@pytest.mark.asyncio
async def test_list_installation_repositories_paginates(private_key_pem):
    pages = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        pages.append(page)
        count = 100 if page == 1 else 3
        repositories = [{"id": page * 1000 + i, "full_name": f"acme/r{page}-{i}"} for i in range(count)]
        return httpx.Response(200, content=json.dumps({"repositories": repositories}))

    repositories = await make_client(private_key_pem, handler).list_installation_repositories("ghs_abc")

    assert pages == [1, 2]
    assert len(repositories) == 103


def oauth_client(private_key_pem, handler) -> GitHubAppClient:
    return GitHubAppClient(
        app_id="12345",
        private_key=private_key_pem,
        api_url="https://api.github.test",
        client_id="Iv1.client",
        client_secret="client-secret",
        oauth_url="https://github.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_oauth_code_exchange_and_user(private_key_pem):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.host, request.url.path, request.headers.get("Authorization")))
        if request.url.path == "/login/oauth/access_token":
            assert json.loads(request.content) == {
                "client_id": "Iv1.client",
                "client_secret": "client-secret",
                "code": "abc",
            }
            assert request.headers["Accept"] == "application/json"
            return httpx.Response(200, json={"access_token": "gho_user", "token_type": "bearer"})
        return httpx.Response(200, json={"login": "octocat", "id": 583231, "name": "The Octocat"})

    client = oauth_client(private_key_pem, handler)
    access_token = await client.exchange_oauth_code("abc")
    account = await client.get_authenticated_user(access_token)

    assert account == {"login": "octocat", "id": 583231}
    assert seen == [
        ("github.test", "/login/oauth/access_token", None),
        ("api.github.test", "/user", "Bearer gho_user"),
    ]


@pytest.mark.asyncio
async def test_oauth_code_rejected(private_key_pem):
    def handler(request):
        return httpx.Response(200, json={"error": "bad_verification_code"})

    with pytest.raises(Unauthorized):
        await oauth_client(private_key_pem, handler).exchange_oauth_code("expired")
