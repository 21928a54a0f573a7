from __future__ import annotations

import asyncio

import pytest

from ilovepdf_mcp.errors import MissingCredentialsError, UnknownToolError
from ilovepdf_mcp.schemas import ChainTasksInput, SplitPdfInput, WatermarkPdfInput
from ilovepdf_mcp.tools import MCP_TOOL_NAMES, MCP_TOOLS, InvalidArgumentsError, call_tool, invoke_tool
from ilovepdf_mcp.tools.credentials import resolve_credentials

from conftest import IMG_HOST, WORKER, make_settings


KEYS = {"public_key": "project_public_test", "secret_key": "secret_test"}


def _call(name, arguments, client_factory, settings):
    return asyncio.run(call_tool(name, arguments, client_factory=client_factory, settings=settings))


def test_registry_lists_every_tool_once():
    assert len(MCP_TOOL_NAMES) == len(set(MCP_TOOL_NAMES))
    for name in (
        "compress_pdf",
        "merge_pdf",
        "watermark_image",
        "create_signature_request",
        "chain_tasks",
        "download_task",
        "check_credits",
        "validate_pdfa",
    ):
        assert name in MCP_TOOL_NAMES

    compress = next(t for t in MCP_TOOLS if t["name"] == "compress_pdf")
    props = compress["inputSchema"]["properties"]
    assert {"file", "output", "compression_level", "keep_task", "public_key", "secret_key"} <= set(props)
    assert "file" in compress["inputSchema"]["required"]


def test_compress_pdf_end_to_end(client_factory, settings, backend, pdf_file, tmp_path):
    out = tmp_path / "small.pdf"
    result = _call("compress_pdf", {**KEYS, "file": str(pdf_file), "output": str(out)}, client_factory, settings)

    assert result["isError"] is False
    text = result["content"][0]["text"]
    assert text.startswith("PDF compressed successfully!")
    assert str(out) in text
    assert "Remaining credits: 250" in text
    assert out.exists()
    assert backend.deleted == {"task-2"}


def test_missing_credentials_makes_no_requests(client_factory, settings, backend, pdf_file):
    result = _call("compress_pdf", {"file": str(pdf_file), "output": "x.pdf"}, client_factory, settings)

    assert result["isError"] is True
    assert result["content"][0]["text"].startswith("Error: Missing API credentials")
    assert backend.requests == []


def test_environment_credentials_are_used(client_factory, backend, pdf_file, tmp_path):
    settings = make_settings(ILOVEPDF_PUBLIC_KEY="env_public", ILOVEPDF_SECRET_KEY="env_secret")
    result = _call("repair_pdf", {"file": str(pdf_file), "output": str(tmp_path / "r.pdf")}, client_factory, settings)

    assert result["isError"] is False
    assert backend.auth_calls == [{"public_key": "env_public"}]


def test_credential_precedence():
    settings = make_settings(
        ILOVEPDF_PUBLIC_KEY="pdf_pub",
        ILOVEPDF_SECRET_KEY="pdf_sec",
        ILOVEIMG_PUBLIC_KEY="img_pub",
        ILOVEIMG_SECRET_KEY="img_sec",
    )
    assert resolve_credentials({}, "document", settings).public_key == "pdf_pub"
    assert resolve_credentials({}, "image", settings).public_key == "img_pub"

    ctx = resolve_credentials(
        {"public_key": "p", "image_public_key": "ip", "secret_key": "s"}, "image", settings
    )
    assert (ctx.public_key, ctx.secret_key, ctx.backend) == ("ip", "s", "image")

    # A half pair from the call falls back to the whole environment pair.
    ctx = resolve_credentials({"public_key": "p"}, "document", settings)
    assert (ctx.public_key, ctx.secret_key) == ("pdf_pub", "pdf_sec")

    with pytest.raises(MissingCredentialsError):
        resolve_credentials({"public_key": "p"}, "document", make_settings())


def test_unknown_tool(client_factory, settings, backend):
    result = _call("shred_pdf", KEYS, client_factory, settings)
    assert result["isError"] is True
    assert "Unknown tool: shred_pdf" in result["content"][0]["text"]

    with pytest.raises(UnknownToolError):
        asyncio.run(invoke_tool("shred_pdf", KEYS, client_factory=client_factory, settings=settings))
    assert backend.requests == []


def test_invalid_arguments_are_rejected_before_network(client_factory, settings, backend, pdf_file):
    with pytest.raises(InvalidArgumentsError) as exc:
        asyncio.run(
            invoke_tool(
                "rotate_pdf",
                {**KEYS, "file": str(pdf_file), "output": "o.pdf", "rotation": 45},
                client_factory=client_factory,
                settings=settings,
            )
        )
    assert str(exc.value).startswith("Invalid arguments for rotate_pdf: rotation")
    assert backend.requests == []


def test_output_required_unless_keep_task(pdf_file):
    with pytest.raises(ValueError):
        SplitPdfInput.model_validate({"file": str(pdf_file), "ranges": "1-2"})
    inp = SplitPdfInput.model_validate({"file": str(pdf_file), "ranges": "1-2", "keep_task": True})
    assert inp.payload() == {"split_mode": "ranges", "ranges": "1-2"}


def test_watermark_center_maps_to_middle(pdf_file):
    inp = WatermarkPdfInput.model_validate(
        {"file": str(pdf_file), "output": "o.pdf", "text": "DRAFT", "position": "center"}
    )
    assert inp.payload()["vertical_position"] == "middle"
    assert inp.payload()["mode"] == "text"
    assert inp.payload()["horizontal_position"] == "center"


def test_chain_options_validated_against_next_tool():
    with pytest.raises(ValueError):
        ChainTasksInput.model_validate({"parent_task": "t1", "next_tool": "protect", "options": {}})
    with pytest.raises(ValueError):
        ChainTasksInput.model_validate(
            {"parent_task": "t1", "next_tool": "compress", "options": {"compression_level": "maximum"}}
        )
    with pytest.raises(ValueError):
        ChainTasksInput.model_validate({"parent_task": "t1", "next_tool": "compressimage"})


def test_keep_task_chain_and_download(client_factory, settings, backend, pdf_file, tmp_path):
    kept = _call("compress_pdf", {**KEYS, "file": str(pdf_file), "keep_task": True}, client_factory, settings)
    assert kept["isError"] is False
    text = kept["content"][0]["text"]
    assert "task kept for chaining" in text
    assert "Task ID: task-2" in text
    assert backend.deleted == set()

    chained = _call(
        "chain_tasks",
        {**KEYS, "parent_task": "task-2", "next_tool": "protect", "options": {"password": "s3cret"}},
        client_factory,
        settings,
    )
    assert chained["isError"] is False
    chained_text = chained["content"][0]["text"]
    assert "Task chained to protect (task kept for chaining)!" in chained_text
    child_id = chained_text.split("Task ID: ")[1].splitlines()[0]

    # The parent was chained; it cannot be chained again.
    again = _call("chain_tasks", {**KEYS, "parent_task": "task-2", "next_tool": "repair"}, client_factory, settings)
    assert again["isError"] is True
    assert "chained" in again["content"][0]["text"]

    out = tmp_path / "final.pdf"
    done = _call("download_task", {**KEYS, "task": child_id, "output": str(out)}, client_factory, settings)
    assert done["isError"] is False
    assert out.read_bytes() == b"%PDF-result-" + child_id.encode("utf-8")
    assert child_id in backend.deleted
    assert len(backend.uploads) == 1


def test_chain_tasks_with_output_downloads(client_factory, settings, backend, pdf_file, tmp_path):
    _call("compress_pdf", {**KEYS, "file": str(pdf_file), "keep_task": True}, client_factory, settings)
    out = tmp_path / "numbered.pdf"
    result = _call(
        "chain_tasks",
        {**KEYS, "parent_task": "task-2", "next_tool": "pagenumber", "output": str(out)},
        client_factory,
        settings,
    )
    assert result["isError"] is False
    assert "Task chained to pagenumber successfully!" in result["content"][0]["text"]
    assert out.exists()
    assert backend.process_bodies[-1]["tool"] == "pagenumber"


def test_image_tool_uses_image_backend(client_factory, settings, backend, tmp_path):
    img = tmp_path / "photo.png"
    img.write_bytes(b"\x89PNG\r\n")
    out = tmp_path / "photo-small.png"

    result = _call(
        "resize_image",
        {**KEYS, "image_public_key": "img_project", "file": str(img), "output": str(out), "percentage": 50, "mode": "percentage"},
        client_factory,
        settings,
    )
    assert result["isError"] is False, result
    assert backend.starts == [(IMG_HOST, "resizeimage", "eu")]
    assert backend.auth_calls == [{"public_key": "img_project"}]
    assert backend.process_bodies[0]["resize_mode"] == "percentage"
    assert backend.process_bodies[0]["percentage"] == 50


def test_create_signature_request(client_factory, settings, backend, pdf_file):
    result = _call(
        "create_signature_request",
        {
            **KEYS,
            "files": [str(pdf_file)],
            "signers": [{"name": "Ana", "email": "ana@example.com"}, {"name": "Bo", "email": "bo@example.com"}],
            "subject": "Please sign",
        },
        client_factory,
        settings,
    )
    assert result["isError"] is False
    assert "Token: sig-token-1" in result["content"][0]["text"]

    body = backend.signature_bodies[0]
    assert [s["order"] for s in body["signers"]] == [1, 2]
    assert body["expiration_days"] == 15
    assert body["files"][0]["filename"] == "input.pdf"
    assert backend.starts[0][1] == "sign"
    assert backend.deleted == {"task-2"}


def test_signature_management_tools(client_factory, settings, backend, tmp_path):
    status = _call("get_signature_status", {**KEYS, "signature_token": "abc"}, client_factory, settings)
    assert '"status": "pending"' in status["content"][0]["text"]

    out = tmp_path / "signed.zip"
    dl = _call("download_signed_files", {**KEYS, "signature_token": "abc", "output": str(out)}, client_factory, settings)
    assert dl["isError"] is False
    assert out.read_bytes() == b"PK-signed-abc"

    void = _call("void_signature", {**KEYS, "signature_token": "abc"}, client_factory, settings)
    assert void["content"][0]["text"] == "Signature request voided: abc"
    assert ("PUT", "https://api.ilovepdf.test/v1/signature/abc/void") in backend.requests

    listed = _call("list_signatures", {**KEYS, "page": 2, "status": "pending"}, client_factory, settings)
    assert '"page": 2' in listed["content"][0]["text"]


def test_check_credits(client_factory, settings, backend):
    result = _call("check_credits", KEYS, client_factory, settings)
    assert result["content"][0]["text"] == "Remaining credits: 250"
    assert backend.deleted == {"task-2"}


def test_backend_failure_is_an_error_result(client_factory, settings, backend, pdf_file, tmp_path):
    backend.process_error = (400, '{"error":"Invalid password"}')
    result = _call(
        "unlock_pdf",
        {**KEYS, "file": str(pdf_file), "output": str(tmp_path / "u.pdf"), "password": "bad"},
        client_factory,
        settings,
    )
    assert result["isError"] is True
    text = result["content"][0]["text"]
    assert text.startswith("Error: Process failed: 400")
    assert "Invalid password" in text
    assert backend.process_bodies[0]["files"][0]["password"] == "bad"


def test_misspelled_option_is_rejected_before_network(client_factory, settings, backend, pdf_file, tmp_path):
    result = _call(
        "compress_pdf",
        {**KEYS, "file": str(pdf_file), "output": str(tmp_path / "c.pdf"), "compresion_level": "extreme"},
        client_factory,
        settings,
    )
    assert result["isError"] is True
    assert result["content"][0]["text"].startswith("Error: Invalid arguments for compress_pdf: compresion_level")
    assert backend.requests == []


def test_download_task_for_unknown_task(client_factory, settings, backend, tmp_path):
    result = _call(
        "download_task",
        {**KEYS, "task": "task-gone", "server": WORKER, "output": str(tmp_path / "gone.pdf")},
        client_factory,
        settings,
    )
    assert result["isError"] is True
    assert result["content"][0]["text"].startswith("Error: Download failed: 404")
    assert backend.deleted == set()
