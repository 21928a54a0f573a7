from __future__ import annotations

import json
from typing import Any, Dict

from ..providers.ilove_api import ILoveAPIClient
from ..schemas import (
    CreateSignatureRequestInput,
    DownloadSignedFilesInput,
    ListSignaturesInput,
    SignatureTokenInput,
)
from .base import ToolSpec


async def create_signature_request(inp: CreateSignatureRequestInput, client: ILoveAPIClient) -> str:
    session = await client.start_task("sign")
    try:
        for ref in inp.files:
            await client.upload(session, ref)

        request: Dict[str, Any] = {
            # Signers sign in the order given.
            "signers": [{"name": s.name, "email": s.email, "order": i + 1} for i, s in enumerate(inp.signers)],
            "expiration_days": inp.expiration_days,
            "reminders": inp.reminders,
        }
        if inp.subject:
            request["subject"] = inp.subject
        if inp.message:
            request["message"] = inp.message

        token = await client.create_signature(session, request)
    finally:
        await client.delete_task(session)

    return (
        "Signature request created!\n"
        f"Token: {token}\n"
        f"Signers: {len(inp.signers)}\n"
        f"Files: {len(inp.files)}"
    )


async def list_signatures(inp: ListSignaturesInput, client: ILoveAPIClient) -> str:
    data = await client.list_signatures(page=inp.page, status=inp.status)
    return json.dumps(data, indent=2, ensure_ascii=False)


async def get_signature_status(inp: SignatureTokenInput, client: ILoveAPIClient) -> str:
    data = await client.get_signature_status(inp.signature_token)
    return json.dumps(data, indent=2, ensure_ascii=False)


async def download_signed_files(inp: DownloadSignedFilesInput, client: ILoveAPIClient) -> str:
    out = await client.download_signed_files(inp.signature_token, inp.output)
    return f"Signed files downloaded to: {out}"


async def void_signature(inp: SignatureTokenInput, client: ILoveAPIClient) -> str:
    await client.void_signature(inp.signature_token)
    return f"Signature request voided: {inp.signature_token}"


async def send_signature_reminder(inp: SignatureTokenInput, client: ILoveAPIClient) -> str:
    await client.send_signature_reminder(inp.signature_token)
    return f"Reminder sent for: {inp.signature_token}"


SIGNATURE_TOOLS = (
    ToolSpec(
        "create_signature_request",
        "Create an e-signature request for PDF documents. Sends email to signers.",
        CreateSignatureRequestInput,
        create_signature_request,
    ),
    ToolSpec(
        "list_signatures",
        "List all signature requests for your project.",
        ListSignaturesInput,
        list_signatures,
    ),
    ToolSpec(
        "get_signature_status",
        "Get status and details of a signature request.",
        SignatureTokenInput,
        get_signature_status,
    ),
    ToolSpec(
        "download_signed_files",
        "Download signed PDF files from a completed signature request.",
        DownloadSignedFilesInput,
        download_signed_files,
    ),
    ToolSpec(
        "void_signature",
        "Cancel/void a pending signature request.",
        SignatureTokenInput,
        void_signature,
    ),
    ToolSpec(
        "send_signature_reminder",
        "Send a reminder email to pending signers.",
        SignatureTokenInput,
        send_signature_reminder,
    ),
)
