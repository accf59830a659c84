"""Unit tests for reggc/registry_client.py"""

from unittest.mock import MagicMock

import pytest
import requests

from reggc.registry_client import DOCKER_MANIFEST_V2, RegistryAPIError, RegistryClient


def _response(status_code=200, json_body=None, headers=None, links=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_body if json_body is not None else {}
    response.headers = headers or {}
    response.links = links or {}
    response.text = text
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session):
    return RegistryClient("registry:5000", session=session)


class TestConstruction:
    def test_plain_http_by_default(self, session):
        assert RegistryClient("registry:5000", session=session).base_url == "http://registry:5000"

    def test_https_when_tls_enabled(self, session):
        assert RegistryClient("registry:5000", tls=True, session=session).base_url == "https://registry:5000"


class TestListRepositories:
    def test_single_page(self, client, session):
        session.request.return_value = _response(json_body={"repositories": ["a", "b"]})

        assert client.list_repositories() == ["a", "b"]
        method, url = session.request.call_args.args
        assert (method, url) == ("GET", "http://registry:5000/v2/_catalog")
        assert session.request.call_args.kwargs["params"] == {"n": 1000}

    def test_follows_link_header(self, client, session):
        session.request.side_effect = [
            _response(
                json_body={"repositories": ["a", "b"]},
                links={"next": {"url": "/v2/_catalog?last=b&n=1000", "rel": "next"}},
            ),
            _response(json_body={"repositories": ["c"]}),
        ]

        assert client.list_repositories() == ["a", "b", "c"]
        second = session.request.call_args_list[1]
        assert second.args[1] == "http://registry:5000/v2/_catalog?last=b&n=1000"
        assert second.kwargs["params"] is None

    def test_error_status_raises(self, client, session):
        session.request.return_value = _response(status_code=401, text="UNAUTHORIZED")

        with pytest.raises(RegistryAPIError) as exc_info:
            client.list_repositories()
        assert exc_info.value.status_code == 401


class TestListTags:
    def test_lists_tags(self, client, session):
        session.request.return_value = _response(json_body={"name": "team/app", "tags": ["v1", "v2"]})

        assert client.list_tags("team/app") == ["v1", "v2"]
        assert session.request.call_args.args[1] == "http://registry:5000/v2/team/app/tags/list"

    def test_null_tags_is_empty(self, client, session):
        session.request.return_value = _response(json_body={"name": "app", "tags": None})

        assert client.list_tags("app") == []


class TestDeleteTag:
    def test_deletes_by_tag_when_supported(self, client, session):
        session.request.return_value = _response(status_code=202)

        client.delete_tag("app", "v1")

        session.request.assert_called_once()
        assert session.request.call_args.args == ("DELETE", "http://registry:5000/v2/app/manifests/v1")

    def test_falls_back_to_placeholder_manifest(self, client, session):
        session.request.side_effect = [
            _response(status_code=400, text='{"errors":[{"code":"DIGEST_INVALID"}]}'),
            _response(status_code=202, headers={"Location": "/v2/app/blobs/uploads/abc?_state=xyz"}),
            _response(status_code=201),
            _response(status_code=201, headers={"Docker-Content-Digest": "sha256:feed"}),
            _response(status_code=202),
        ]

        client.delete_tag("app", "v1")

        calls = [(c.args[0], c.args[1]) for c in session.request.call_args_list]
        assert calls == [
            ("DELETE", "http://registry:5000/v2/app/manifests/v1"),
            ("POST", "http://registry:5000/v2/app/blobs/uploads/"),
            ("PUT", "http://registry:5000/v2/app/blobs/uploads/abc?_state=xyz"),
            ("PUT", "http://registry:5000/v2/app/manifests/v1"),
            ("DELETE", "http://registry:5000/v2/app/manifests/sha256:feed"),
        ]
        blob_put = session.request.call_args_list[2]
        assert blob_put.kwargs["params"]["digest"].startswith("sha256:")
        manifest_put = session.request.call_args_list[3]
        assert manifest_put.kwargs["headers"]["Content-Type"] == DOCKER_MANIFEST_V2

    def test_placeholder_manifests_are_unique(self, client, session):
        def run_once():
            session.request.reset_mock()
            session.request.side_effect = [
                _response(status_code=405),
                _response(status_code=202, headers={"Location": "/v2/app/blobs/uploads/abc"}),
                _response(status_code=201),
                _response(status_code=201),
                _response(status_code=202),
            ]
            client.delete_tag("app", "v1")
            return session.request.call_args_list[4].args[1]

        assert run_once() != run_once()

    def test_missing_tag_raises(self, client, session):
        session.request.return_value = _response(status_code=404, text="MANIFEST_UNKNOWN")

        with pytest.raises(RegistryAPIError) as exc_info:
            client.delete_tag("app", "v1")
        assert exc_info.value.status_code == 404
        session.request.assert_called_once()

    def test_failed_digest_delete_raises(self, client, session):
        session.request.side_effect = [
            _response(status_code=400),
            _response(status_code=202, headers={"Location": "/v2/app/blobs/uploads/abc"}),
            _response(status_code=201),
            _response(status_code=201, headers={"Docker-Content-Digest": "sha256:feed"}),
            _response(status_code=405, text="UNSUPPORTED"),
        ]

        with pytest.raises(RegistryAPIError) as exc_info:
            client.delete_tag("app", "v1")
        assert exc_info.value.method == "DELETE"
        assert exc_info.value.status_code == 405
