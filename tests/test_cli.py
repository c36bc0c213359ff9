from __future__ import annotations

from pathlib import Path

import pytest

import rubi.cli as cli

_DICT = """\
terms:
  - term: Vite
    yomi: ヴィート
  - term: gRPC
    yomi: ジーアールピーシー
"""
_VITE = "<ruby>Vite<rt>ヴィート</rt></ruby>"


@pytest.fixture
def dict_path(tmp_path: Path) -> Path:
    path = tmp_path / "dict.yaml"
    path.write_text(_DICT, encoding="utf-8")
    return path


def _markdown(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "doc.md"
    path.write_text(text, encoding="utf-8")
    return path


def test_manual_mode_prints_result(tmp_path: Path, dict_path: Path, capsys) -> None:
    doc = _markdown(tmp_path, "Hello Vite:rubi and Nope:rubi!\n")
    assert cli.main(["-d", str(dict_path), str(doc)]) == 0
    captured = capsys.readouterr()
    assert captured.out == f"Hello {_VITE} and Nope!\n"
    assert "term 'Nope' not found in dictionary" in captured.err
    assert doc.read_text(encoding="utf-8") == "Hello Vite:rubi and Nope:rubi!\n"


def test_write_flag_updates_file(tmp_path: Path, dict_path: Path, capsys) -> None:
    doc = _markdown(tmp_path, "Vite is good. Vite is fast.\n")
    assert cli.main(["-d", str(dict_path), "-s", "--first-only", "-w", str(doc)]) == 0
    assert doc.read_text(encoding="utf-8") == f"{_VITE} is good. Vite is fast.\n"
    assert "has been updated" in capsys.readouterr().out


def test_dry_run_leaves_file_and_reports(tmp_path: Path, dict_path: Path, capsys) -> None:
    doc = _markdown(tmp_path, "Hello Vite!\n")
    assert cli.main(["-d", str(dict_path), "-s", "--dry-run", "-w", str(doc)]) == 0
    captured = capsys.readouterr()
    assert captured.out == "Hello Vite!\n"
    assert "patch (scan): 'Vite'" in captured.err
    assert doc.read_text(encoding="utf-8") == "Hello Vite!\n"


@pytest.mark.parametrize(
    ("argv", "message"),
    [
        (["--first-only", "doc.md"], "only valid in -s (scan) mode"),
        (["-s"], "an input file is required for scan mode"),
        ([], "an input file is required for manual mode"),
        (["-c", "doc.md"], "cannot be used with an input file"),
        (["-c", "-s"], "cannot be used with other processing flags"),
    ],
)
def test_flag_validation(dict_path: Path, argv: list[str], message: str) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-d", str(dict_path), *argv])
    assert message in str(excinfo.value)


def test_check_reports_valid_and_invalid_dictionaries(tmp_path: Path, dict_path: Path, capsys) -> None:
    assert cli.main(["-c", "-d", str(dict_path)]) == 0
    assert "is valid (2 terms)" in capsys.readouterr().out

    broken = tmp_path / "broken.yaml"
    broken.write_text("terms:\n  - term: Vite\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-c", "-d", str(broken)])
    assert "dictionary validation failed" in str(excinfo.value)


def test_missing_input_file_exits(tmp_path: Path, dict_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-d", str(dict_path), str(tmp_path / "missing.md")])
    assert "failed to read file" in str(excinfo.value)


def test_no_arguments_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "usage: rubi" in capsys.readouterr().out


def test_init_and_update_forward_to_tools(monkeypatch, tmp_path: Path, capsys) -> None:
    calls: list[tuple[str, ...]] = []

    def _fake_init(repo, destination, overwrite=False):
        calls.append(("init", repo, str(destination), str(overwrite)))
        return Path(destination)

    def _fake_update(repo, destination):
        calls.append(("update", repo, str(destination)))
        return Path(destination)

    monkeypatch.setattr(cli, "init_dictionary", _fake_init)
    monkeypatch.setattr(cli, "update_dictionary", _fake_update)
    target = tmp_path / "dict.yaml"

    assert cli.main(["init", "--repo", "owner/repo", "--overwrite", "-d", str(target)]) == 0
    assert cli.main(["dict", "update", "--repo", "owner/repo", "-d", str(target)]) == 0
    assert calls == [
        ("init", "owner/repo", str(target), "True"),
        ("update", "owner/repo", str(target)),
    ]
    assert "Successfully downloaded" in capsys.readouterr().out


def test_init_errors_become_system_exit(monkeypatch, tmp_path: Path) -> None:
    def _fail(repo, destination, overwrite=False):
        raise cli.DictionaryDownloadError("dict.yaml already exists. Use --overwrite to replace it.")

    monkeypatch.setattr(cli, "init_dictionary", _fail)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["init", "-d", str(tmp_path / "dict.yaml")])
    assert "already exists" in str(excinfo.value)


def test_dict_sort_command(tmp_path: Path, dict_path: Path, capsys) -> None:
    target = tmp_path / "sorted.yaml"
    assert cli.main(["dict", "sort", str(dict_path), str(target)]) == 0
    assert "Sorted 2 terms" in capsys.readouterr().out
    assert target.read_text(encoding="utf-8").startswith("terms:\n- term: gRPC\n")


def test_dict_without_subcommand_exits() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["dict"])
    assert "dict subcommand is required" in str(excinfo.value)
