from __future__ import annotations

import os
from pathlib import Path

import requests

from .dictionary import DictionaryError, parse_dictionary

__all__ = [
    "DEFAULT_DICT_FILENAME",
    "DEFAULT_DICT_REPO",
    "DictionaryDownloadError",
    "dictionary_url",
    "download_dictionary",
    "init_dictionary",
    "update_dictionary",
]

DEFAULT_DICT_REPO = "takaryo1010/rubi"
DEFAULT_DICT_FILENAME = "dict.yaml"
GITHUB_API_URL = "https://api.github.com"
_RAW_ACCEPT = "application/vnd.github.raw"


class DictionaryDownloadError(RuntimeError):
    """Raised when dict.yaml cannot be fetched, validated or saved."""


def _github_token() -> str | None:
    for name in ("GITHUB_TOKEN", "GH_TOKEN"):
        value = os.environ.get(name)
        if value:
            return value
    return None


def dictionary_url(repo: str) -> str:
    owner, sep, name = repo.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise DictionaryDownloadError(f"invalid repository format: {repo}. Expected owner/repo")
    return f"{GITHUB_API_URL}/repos/{owner}/{name}/contents/{DEFAULT_DICT_FILENAME}"


def download_dictionary(
    repo: str,
    destination: str | Path,
    *,
    token: str | None = None,
    timeout: float = 30,
) -> Path:
    """
    Fetch ``dict.yaml`` from a GitHub repository and write it to ``destination``.

    The payload must be a valid dictionary; nothing is written otherwise.
    ``token`` defaults to ``$GITHUB_TOKEN`` or ``$GH_TOKEN``.
    """
    url = dictionary_url(repo)
    headers = {"Accept": _RAW_ACCEPT}
    token = token or _github_token()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        response = requests.get(url, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise DictionaryDownloadError(
            f"failed to download {DEFAULT_DICT_FILENAME} from {repo}: {exc}"
        ) from exc

    payload = response.content
    try:
        parse_dictionary(payload.decode("utf-8"))
    except (UnicodeDecodeError, DictionaryError) as exc:
        raise DictionaryDownloadError(
            f"downloaded {DEFAULT_DICT_FILENAME} from {repo} is not a valid dictionary: {exc}"
        ) from exc

    target = Path(destination)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
    except OSError as exc:
        raise DictionaryDownloadError(f"failed to write {target}: {exc}") from exc
    return target


def init_dictionary(
    repo: str = DEFAULT_DICT_REPO,
    destination: str | Path = DEFAULT_DICT_FILENAME,
    *,
    overwrite: bool = False,
) -> Path:
    target = Path(destination)
    if target.exists() and not overwrite:
        raise DictionaryDownloadError(f"{target} already exists. Use --overwrite to replace it.")
    return download_dictionary(repo, target)


def update_dictionary(
    repo: str = DEFAULT_DICT_REPO,
    destination: str | Path = DEFAULT_DICT_FILENAME,
) -> Path:
    return download_dictionary(repo, destination)
