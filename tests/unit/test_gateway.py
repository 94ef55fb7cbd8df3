from __future__ import annotations

import base64
import dataclasses
import json
import os
from pathlib import Path
from typing import Any

import pytest

from toolgate.core.types import ToolResponse
from toolgate.gateway import ToolGateway
from toolgate.observability.metrics import get_metrics_registry
from toolgate.security.confinement import AllowedRootSet
from toolgate.settings import GatewaySettings

posix_only = pytest.mark.skipif(os.name == "nt", reason="tests drive /bin/sh")


@pytest.fixture
def gateway(roots: AllowedRootSet) -> ToolGateway:
    return ToolGateway(roots, GatewaySettings(DEFAULT_TIMEOUT_MS=5000))


async def _call(gateway: ToolGateway, name: str, **arguments: Any) -> ToolResponse:
    return await gateway.call_tool(name, arguments)


@pytest.mark.asyncio
async def test_list_allowed_directories(gateway: ToolGateway, root_dir: Path) -> None:
    response = await _call(gateway, "list_allowed_directories")

    assert not response.is_error
    assert response.joined_text == f"Allowed directories:\n{root_dir}"


@pytest.mark.asyncio
async def test_list_allowed_directories_is_stable(gateway: ToolGateway) -> None:
    first = await _call(gateway, "list_allowed_directories")
    second = await _call(gateway, "list_allowed_directories")

    assert first.to_payload() == second.to_payload()


@pytest.mark.asyncio
async def test_unknown_tool_is_an_error_response(gateway: ToolGateway) -> None:
    response = await _call(gateway, "awk", command="awk '{print}'")

    assert response.is_error
    assert response.to_payload() == {
        "content": [{"type": "text", "text": "Error: Unknown tool: awk"}],
        "isError": True,
    }


@pytest.mark.asyncio
async def test_invalid_arguments_are_reported(gateway: ToolGateway) -> None:
    response = await _call(gateway, "read_file")

    assert response.is_error
    assert response.joined_text.startswith("Error: Invalid arguments for read_file")
    assert "filePath" in response.joined_text


@pytest.mark.asyncio
async def test_write_then_read_file(gateway: ToolGateway, root_dir: Path) -> None:
    written = await _call(
        gateway,
        "write_file",
        filePath="nested/dir/hello.txt",
        content="héllo\n",
        createDirectories=True,
    )
    target = root_dir / "nested" / "dir" / "hello.txt"

    assert written.joined_text == f"Successfully wrote 7 bytes to {target}"
    read = await _call(gateway, "read_file", filePath=str(target))
    assert read.joined_text == "héllo\n"


@pytest.mark.asyncio
async def test_write_outside_roots_is_denied(gateway: ToolGateway, outside_dir: Path) -> None:
    target = outside_dir / "x.txt"

    response = await _call(gateway, "write_file", filePath=str(target), content="nope")

    assert response.is_error
    assert response.joined_text == f"Error: Access denied - {target} is outside allowed directories"
    assert not target.exists()


@pytest.mark.asyncio
async def test_read_multiple_files_reports_each_path(
    gateway: ToolGateway, root_dir: Path, outside_dir: Path
) -> None:
    (root_dir / "a.txt").write_text("alpha")
    outside = str(outside_dir / "b.txt")

    response = await _call(gateway, "read_multiple_files", filePaths=["a.txt", outside])

    assert not response.is_error
    assert response.content[0].text == "File: a.txt\nContent: alpha"
    assert response.content[1].text.startswith(f"File: {outside}\nError: Access denied")


@pytest.mark.asyncio
async def test_read_multiple_files_fails_when_nothing_is_readable(gateway: ToolGateway) -> None:
    response = await _call(gateway, "read_multiple_files", filePaths=["missing.txt"])

    assert response.is_error
    assert "Failed to read file" in response.joined_text


@pytest.mark.asyncio
async def test_list_directory_is_sorted_and_stable(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "b.txt").write_text("")
    (root_dir / "a-dir").mkdir()

    first = await _call(gateway, "list_directory", directoryPath=".")
    second = await _call(gateway, "list_directory", directoryPath=str(root_dir))

    assert first.joined_text == second.joined_text
    assert json.loads(first.joined_text) == [
        {"name": "a-dir", "type": "directory", "path": str(root_dir / "a-dir")},
        {"name": "b.txt", "type": "file", "path": str(root_dir / "b.txt")},
    ]


@pytest.mark.asyncio
async def test_touch_creates_then_updates(gateway: ToolGateway, root_dir: Path) -> None:
    target = root_dir / "stamp"

    created = await _call(gateway, "touch", filePath="stamp")
    updated = await _call(gateway, "touch", filePath="stamp")

    assert created.joined_text == f"Created new file: {target}"
    assert updated.joined_text == f"Updated timestamp for {target}"
    assert target.exists()


@pytest.mark.asyncio
async def test_cat_selects_numbered_line_range(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "lines.txt").write_text("one\ntwo\nthree\nfour\n")

    response = await _call(
        gateway, "cat", filePath="lines.txt", showLineNumbers=True, startLine=2, endLine=3
    )

    assert response.joined_text == "2\ttwo\n3\tthree"


@pytest.mark.asyncio
async def test_cat_base64(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "blob.bin").write_bytes(b"\x00\x01binary")

    response = await _call(gateway, "cat", filePath="blob.bin", encoding="base64")

    assert base64.b64decode(response.joined_text) == b"\x00\x01binary"


@pytest.mark.asyncio
async def test_cat_rejects_inverted_range(gateway: ToolGateway, root_dir: Path) -> None:
    response = await _call(gateway, "cat", filePath="x.txt", startLine=5, endLine=2)

    assert response.is_error
    assert "endLine must be greater than or equal to startLine" in response.joined_text


@pytest.mark.asyncio
async def test_grep_searches_directories_recursively(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "src").mkdir()
    (root_dir / "src" / "main.py").write_text("import os\n# TODO: tidy\n")
    (root_dir / "README").write_text("todo list\n")

    response = await _call(gateway, "grep", query=r"TODO", filePaths=["."])

    assert response.joined_text == f"{root_dir / 'src' / 'main.py'}:2:# TODO: tidy"


@pytest.mark.asyncio
async def test_grep_without_matches(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "a.txt").write_text("nothing here\n")

    response = await _call(gateway, "grep", query="absent", filePaths=["a.txt"])

    assert not response.is_error
    assert response.joined_text == "No matches found"


@pytest.mark.asyncio
async def test_grep_strips_line_endings_and_skips_binary(
    gateway: ToolGateway, root_dir: Path
) -> None:
    (root_dir / "dos.txt").write_bytes(b"first\r\nneedle here\r\nlast\r\n")
    (root_dir / "blob.bin").write_bytes(b"needle\x00\x01\x02")

    response = await _call(gateway, "grep", query="needle", filePaths=["."])

    assert response.joined_text == f"{root_dir / 'dos.txt'}:2:needle here"


@pytest.mark.asyncio
async def test_grep_rejects_invalid_expressions(gateway: ToolGateway, root_dir: Path) -> None:
    response = await _call(gateway, "grep", query="(unclosed", filePaths=["."])

    assert response.is_error
    assert "Invalid regular expression" in response.joined_text


@posix_only
@pytest.mark.asyncio
async def test_grep_skips_symlinks_leading_outside(
    gateway: ToolGateway, root_dir: Path, outside_dir: Path
) -> None:
    (outside_dir / "secret.txt").write_text("password=hunter2\n")
    (root_dir / "innocent.txt").symlink_to(outside_dir / "secret.txt")

    response = await _call(gateway, "grep", query="password", filePaths=["."])

    assert response.joined_text == "No matches found"


@pytest.mark.asyncio
async def test_sed_replaces_with_backup(gateway: ToolGateway, root_dir: Path) -> None:
    target = root_dir / "conf.ini"
    target.write_text("host=old\nmirror=old\n")

    response = await _call(
        gateway,
        "sed",
        filePath="conf.ini",
        pattern="OLD",
        replacement="new",
        ignoreCase=True,
        backup=True,
    )

    assert response.joined_text == f"Made 2 replacement(s) in {target} (backup created)"
    assert target.read_text() == "host=new\nmirror=new\n"
    assert (root_dir / "conf.ini.bak").read_text() == "host=old\nmirror=old\n"


@pytest.mark.asyncio
async def test_sed_first_match_only(gateway: ToolGateway, root_dir: Path) -> None:
    target = root_dir / "list.txt"
    target.write_text("a a a")

    response = await _call(
        gateway, "sed", filePath="list.txt", pattern=r"(a)", replacement=r"<\1>", replaceAll=False
    )

    assert response.joined_text == f"Made 1 replacement(s) in {target}"
    assert target.read_text() == "<a> a a"


@pytest.mark.asyncio
async def test_sed_reports_no_replacements(gateway: ToolGateway, root_dir: Path) -> None:
    target = root_dir / "same.txt"
    target.write_text("unchanged")

    response = await _call(gateway, "sed", filePath="same.txt", pattern="zzz", replacement="y")

    assert response.joined_text == f"No replacements made in {target}"


@pytest.mark.asyncio
async def test_unexpected_failures_are_reported_generically(
    gateway: ToolGateway, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def boom(_: object) -> ToolResponse:
        raise RuntimeError("internal detail")

    definition = gateway.get_tool("read_file")
    monkeypatch.setitem(
        gateway._tools, "read_file", dataclasses.replace(definition, handler=boom)  # noqa: SLF001
    )

    response = await _call(gateway, "read_file", filePath="x")

    assert response.is_error
    assert response.joined_text == "Error: Internal error while running read_file"
    assert "internal detail" not in response.joined_text


@pytest.mark.asyncio
async def test_cd_outside_roots_keeps_working_directory(
    gateway: ToolGateway, root_dir: Path, outside_dir: Path
) -> None:
    response = await _call(gateway, "cd", path=str(outside_dir))

    assert response.is_error
    assert "outside allowed directories" in response.joined_text
    assert gateway.workdir.current == str(root_dir)


@posix_only
@pytest.mark.asyncio
async def test_cd_moves_later_shell_commands(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "work").mkdir()

    changed = await _call(gateway, "cd", path="work")
    response = await _call(gateway, "shell", command="pwd")

    assert changed.joined_text == f"Working directory changed to {root_dir / 'work'}"
    assert Path(response.joined_text.strip()).resolve() == root_dir / "work"


@posix_only
@pytest.mark.asyncio
async def test_shell_renders_output_segments(gateway: ToolGateway) -> None:
    response = await _call(gateway, "shell", command="echo out; echo err 1>&2")

    assert not response.is_error
    assert [segment.text for segment in response.content] == [
        "out\n",
        "Warning: Command produced error output:\nerr\n",
    ]


@posix_only
@pytest.mark.asyncio
async def test_shell_without_output(gateway: ToolGateway) -> None:
    response = await _call(gateway, "shell", command="touch quiet.txt")

    assert response.joined_text == "Command executed successfully with no output"


@posix_only
@pytest.mark.asyncio
async def test_shell_reports_non_zero_status(gateway: ToolGateway) -> None:
    response = await _call(gateway, "shell", command="ls missing-entry")

    assert not response.is_error
    assert response.content[-1].text.startswith("Command exited with status ")
    assert response.content[0].text.startswith("Warning: Command produced error output:")


@posix_only
@pytest.mark.slow
@pytest.mark.asyncio
async def test_shell_timeout_is_an_error(gateway: ToolGateway, root_dir: Path) -> None:
    (root_dir / "log.txt").write_text("")

    response = await _call(gateway, "shell", command="echo begin; tail -f log.txt", timeout=300)

    assert response.is_error
    assert response.joined_text.startswith("Error: Command timed out after 300 ms")
    assert "Partial output:\nbegin" in response.joined_text


@pytest.mark.asyncio
async def test_shell_denials_are_error_responses(gateway: ToolGateway) -> None:
    denied = await _call(gateway, "shell", command="echo hi ; sh")
    harmful = await _call(gateway, "shell", command="rm -rf /")

    assert denied.is_error
    assert "disallowed token 'sh'" in denied.joined_text
    assert harmful.joined_text == (
        "Error: Potentially harmful command detected (recursive delete from an absolute path)"
    )


@posix_only
@pytest.mark.asyncio
async def test_shell_wildcards_cannot_reach_the_parent(
    gateway: ToolGateway, root_dir: Path, outside_dir: Path
) -> None:
    (outside_dir / "secret.txt").write_text("TOPSECRET")
    escape = os.path.relpath(outside_dir, root_dir).replace("..", ".?", 1)

    response = await _call(gateway, "shell", command=f"cat {escape}/secret.txt")

    assert response.is_error
    assert "TOPSECRET" not in response.joined_text


@pytest.mark.asyncio
async def test_calls_are_counted(gateway: ToolGateway) -> None:
    await _call(gateway, "list_allowed_directories")
    await _call(gateway, "shell", command="sudo ls")

    snapshot = get_metrics_registry().snapshot()
    assert snapshot.calls_total == 2
    assert snapshot.errors_total == 1
    assert snapshot.error_categories == {"harmful-pattern": 1}
    assert snapshot.denials_by_stage == {"deny-pattern": 1}
