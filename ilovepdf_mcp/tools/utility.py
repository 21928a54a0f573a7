from __future__ import annotations

from ..providers.ilove_api import ILoveAPIClient
from ..schemas import CheckCreditsInput, ValidatePdfaInput
from .base import ToolSpec, transform_tool


async def check_credits(inp: CheckCreditsInput, client: ILoveAPIClient) -> str:
    credits = await client.get_remaining_credits()
    return f"Remaining credits: {credits if credits is not None else 'unknown'}"


UTILITY_TOOLS = (
    ToolSpec(
        "check_credits",
        "Check remaining API credits/quota for your iLovePDF account. Starts (and releases) a probe task.",
        CheckCreditsInput,
        check_credits,
    ),
    transform_tool(
        "validate_pdfa",
        "Validate PDF/A compliance for a PDF file. Writes the validation report to output.",
        ValidatePdfaInput,
        "PDF/A validation complete",
    ),
)
