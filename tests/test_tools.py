from __future__ import annotations

from pathlib import Path

import pytest
import requests

import rubi.tools as tools

_PAYLOAD = "terms:\n  - term: Vite\n    yomi: ヴィート\n".encode("utf-8")


class _FakeResponse:
    def __init__(self, content: bytes, status_code: int = 200) -> None:
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


def _fake_get(calls: list[dict[str, object]], response: _FakeResponse):
    def _get(url, headers=None, timeout=None):
        calls.append({"url": url, "headers": headers, "timeout": timeout})
        return response

    return _get


def test_dictionary_url_requires_owner_and_repo() -> None:
    assert tools.dictionary_url("owner/repo") == "https://api.github.com/repos/owner/repo/contents/dict.yaml"
    for repo in ("owner", "owner/", "/repo", "a/b/c"):
        with pytest.raises(tools.DictionaryDownloadError, match="invalid repository format"):
            tools.dictionary_url(repo)


def test_download_writes_validated_payload(monkeypatch, tmp_path: Path) -> None:
    calls: list[dict[str, object]] = []
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("GH_TOKEN", "secret")
    monkeypatch.setattr(tools.requests, "get", _fake_get(calls, _FakeResponse(_PAYLOAD)))

    target = tools.download_dictionary("owner/repo", tmp_path / "nested" / "dict.yaml")

    assert target.read_bytes() == _PAYLOAD
    assert calls[0]["url"] == "https://api.github.com/repos/owner/repo/contents/dict.yaml"
    headers = calls[0]["headers"]
    assert headers["Accept"] == "application/vnd.github.raw"
    assert headers["Authorization"] == "Bearer secret"


def test_download_rejects_invalid_dictionary(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(tools.requests, "get", _fake_get([], _FakeResponse(b"terms:\n  - term: Vite\n")))
    target = tmp_path / "dict.yaml"
    with pytest.raises(tools.DictionaryDownloadError, match="not a valid dictionary"):
        tools.download_dictionary("owner/repo", target)
    assert not target.exists()


def test_download_reports_http_errors(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(tools.requests, "get", _fake_get([], _FakeResponse(b"", status_code=404)))
    with pytest.raises(tools.DictionaryDownloadError, match="failed to download dict.yaml from owner/repo"):
        tools.download_dictionary("owner/repo", tmp_path / "dict.yaml")


def test_init_refuses_to_overwrite_without_flag(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(tools.requests, "get", _fake_get([], _FakeResponse(_PAYLOAD)))
    target = tmp_path / "dict.yaml"
    target.write_text("old content", encoding="utf-8")

    with pytest.raises(tools.DictionaryDownloadError, match="already exists"):
        tools.init_dictionary("owner/repo", target)
    assert target.read_text(encoding="utf-8") == "old content"

    tools.init_dictionary("owner/repo", target, overwrite=True)
    assert target.read_bytes() == _PAYLOAD


def test_update_always_replaces(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(tools.requests, "get", _fake_get([], _FakeResponse(_PAYLOAD)))
    target = tmp_path / "dict.yaml"
    target.write_text("old content", encoding="utf-8")
    tools.update_dictionary("owner/repo", target)
    assert target.read_bytes() == _PAYLOAD
