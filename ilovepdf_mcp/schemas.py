from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


# ---------------------------
# Backend response schemas
# ---------------------------


class TaskInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    server: str
    task: str
    remaining_credits: Optional[int] = None
    # Seconds until the backend drops the task, if it ever reports one.
    expires_in: Optional[float] = None


class UploadedFile(BaseModel):
    """A server-side file handle, plus the per-file overrides sent with it to /process."""

    model_config = ConfigDict(extra="ignore")

    server_filename: str
    # Original base name; the backend uses it for format inference and result naming.
    filename: Optional[str] = None
    password: Optional[str] = None
    rotate: Optional[int] = None


class ProcessResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    download_filename: Optional[str] = None
    filesize: Optional[int] = None
    output_filesize: Optional[int] = None
    output_filenumber: Optional[int] = None
    # Documented as a list; some backends send it JSON-encoded.
    output_extensions: Union[List[str], str, None] = None
    timer: Union[str, float, None] = None
    status: Optional[str] = None


class ChainedTask(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task: str
    server: Optional[str] = None
    files: List[UploadedFile] = Field(default_factory=list)
    remaining_credits: Optional[int] = None

    @field_validator("files", mode="before")
    @classmethod
    def _normalize_files(cls, v: Any) -> Any:
        # Accept ["srv_name", ...], {"srv_name": "display.pdf"} or a list of objects.
        if v is None:
            return []
        if isinstance(v, dict):
            return [{"server_filename": k, "filename": fn} for k, fn in v.items()]
        if isinstance(v, list):
            return [{"server_filename": f} if isinstance(f, str) else f for f in v]
        return v


# ---------------------------
# Per-transform options
# ---------------------------


def _hex_color() -> Any:
    return Field(default="#000000", pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex color")


class TransformOptions(BaseModel):
    """Options for one remote transform.

    `payload()` is the option bag flattened into the /process body and
    `file_overrides()` travels on every file reference instead.
    """

    model_config = ConfigDict(extra="forbid")

    transform: ClassVar[str] = ""

    def payload(self) -> Dict[str, Any]:
        return {}

    def file_overrides(self) -> Dict[str, Any]:
        return {}


class CompressOptions(TransformOptions):
    transform: ClassVar[str] = "compress"

    compression_level: Literal["low", "recommended", "extreme"] = "recommended"

    def payload(self) -> Dict[str, Any]:
        return {"compression_level": self.compression_level}


class MergeOptions(TransformOptions):
    transform: ClassVar[str] = "merge"


class SplitOptions(TransformOptions):
    transform: ClassVar[str] = "split"

    mode: Literal["ranges", "fixed_range", "remove_pages", "filesize"] = "ranges"
    ranges: Optional[str] = Field(default=None, description="Page ranges e.g., '1-5,6-10,11-15'")
    fixed_range: Optional[int] = Field(default=None, ge=1, description="Pages per split")
    remove_pages: Optional[str] = Field(default=None, description="Pages to remove e.g., '1,3,5-7'")
    filesize: Optional[int] = Field(default=None, ge=1, description="Maximum size in bytes per split file")

    @model_validator(mode="after")
    def _require_mode_argument(self) -> "SplitOptions":
        needed = {
            "ranges": self.ranges,
            "fixed_range": self.fixed_range,
            "remove_pages": self.remove_pages,
            "filesize": self.filesize,
        }
        if not needed[self.mode]:
            raise ValueError(f"split mode '{self.mode}' requires '{self.mode}'")
        return self

    def payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"split_mode": self.mode}
        for k in ("ranges", "fixed_range", "remove_pages", "filesize"):
            v = getattr(self, k)
            if v:
                out[k] = v
        return out


class RotateOptions(TransformOptions):
    transform: ClassVar[str] = "rotate"

    rotation: Literal[0, 90, 180, 270] = Field(default=90, description="Rotation in degrees")

    def file_overrides(self) -> Dict[str, Any]:
        return {"rotate": self.rotation}


class RepairOptions(TransformOptions):
    transform: ClassVar[str] = "repair"


class PdfToJpgOptions(TransformOptions):
    transform: ClassVar[str] = "pdfjpg"

    mode: Literal["pages", "extract"] = "pages"

    def payload(self) -> Dict[str, Any]:
        return {"pdfjpg_mode": self.mode}


class ImageToPdfOptions(TransformOptions):
    transform: ClassVar[str] = "imagepdf"

    orientation: Literal["portrait", "landscape"] = "portrait"
    margin: int = Field(default=0, ge=0, description="Margin in pixels")
    page_size: Literal["fit", "A4", "letter"] = "fit"
    merge: bool = Field(default=True, description="Merge all images into one PDF")

    def payload(self) -> Dict[str, Any]:
        return {
            "orientation": self.orientation,
            "margin": self.margin,
            "pagesize": self.page_size,
            "merge_after": self.merge,
        }


class HtmlToPdfOptions(TransformOptions):
    transform: ClassVar[str] = "htmlpdf"


class OfficeToPdfOptions(TransformOptions):
    transform: ClassVar[str] = "officepdf"


PdfaConformance = Literal[
    "pdfa-1b", "pdfa-1a", "pdfa-2b", "pdfa-2u", "pdfa-2a", "pdfa-3b", "pdfa-3u", "pdfa-3a"
]


class PdfaOptions(TransformOptions):
    transform: ClassVar[str] = "pdfa"

    conformance: PdfaConformance = "pdfa-2b"

    def payload(self) -> Dict[str, Any]:
        return {"conformance": self.conformance, "allow_downgrade": True}


class ValidatePdfaOptions(TransformOptions):
    transform: ClassVar[str] = "validatepdfa"

    conformance: PdfaConformance = "pdfa-2b"

    def payload(self) -> Dict[str, Any]:
        return {"conformance": self.conformance}


class WatermarkOptions(TransformOptions):
    transform: ClassVar[str] = "watermark"

    text: str = Field(..., min_length=1, description="Watermark text")
    pages: str = Field(default="all", description="Pages to watermark: 'all', '1-5', '1,3,5'")
    position: Literal["top", "middle", "bottom", "center"] = "middle"
    rotation: int = Field(default=0, ge=0, le=360, description="Rotation angle 0-360")
    font_size: int = Field(default=14, ge=1)
    font_color: str = _hex_color()
    transparency: int = Field(default=100, ge=1, le=100, description="Opacity 1-100")

    def payload(self) -> Dict[str, Any]:
        return {
            "mode": "text",
            "text": self.text,
            "pages": self.pages,
            # The backend names the vertical centre "middle".
            "vertical_position": "middle" if self.position == "center" else self.position,
            "horizontal_position": "center",
            "rotation": self.rotation,
            "font_size": self.font_size,
            "font_color": self.font_color,
            "transparency": self.transparency,
        }


class PageNumberOptions(TransformOptions):
    transform: ClassVar[str] = "pagenumber"

    pages: str = Field(default="all", description="Pages to number: 'all', '3-end', '1,3,5-9'")
    starting_number: int = Field(default=1, ge=1)
    vertical_position: Literal["top", "bottom"] = "bottom"
    horizontal_position: Literal["left", "center", "right"] = "center"
    font_size: int = Field(default=14, ge=1)
    font_color: str = _hex_color()
    text: str = Field(default="{n}", description="Use {n} for page number, {p} for total pages")

    def payload(self) -> Dict[str, Any]:
        return {
            "pages": self.pages,
            "starting_number": self.starting_number,
            "vertical_position": self.vertical_position,
            "horizontal_position": self.horizontal_position,
            "font_size": self.font_size,
            "font_color": self.font_color,
            "text": self.text,
        }


class OcrOptions(TransformOptions):
    transform: ClassVar[str] = "pdfocr"

    languages: List[str] = Field(
        default_factory=lambda: ["eng"],
        min_length=1,
        description="OCR languages: eng, spa, fra, deu, chi_sim, jpn, etc.",
    )

    def payload(self) -> Dict[str, Any]:
        return {"ocr_languages": list(self.languages)}


class ExtractOptions(TransformOptions):
    transform: ClassVar[str] = "extract"

    detailed: bool = Field(default=False, description="Include position details")

    def payload(self) -> Dict[str, Any]:
        return {"detailed": self.detailed}


class ProtectOptions(TransformOptions):
    transform: ClassVar[str] = "protect"

    password: str = Field(..., min_length=1, description="Password to set")

    def payload(self) -> Dict[str, Any]:
        return {"password": self.password}


class UnlockOptions(TransformOptions):
    transform: ClassVar[str] = "unlock"

    password: Optional[str] = Field(default=None, description="Current PDF password")

    def file_overrides(self) -> Dict[str, Any]:
        return {"password": self.password} if self.password else {}


class CompressImageOptions(TransformOptions):
    transform: ClassVar[str] = "compressimage"

    compression_level: Literal["low", "recommended", "extreme"] = "recommended"

    def payload(self) -> Dict[str, Any]:
        return {"compression_level": self.compression_level}


class ResizeImageOptions(TransformOptions):
    transform: ClassVar[str] = "resizeimage"

    mode: Literal["pixels", "percentage"] = "pixels"
    width: Optional[int] = Field(default=None, ge=1, description="Width in pixels")
    height: Optional[int] = Field(default=None, ge=1, description="Height in pixels")
    percentage: Optional[int] = Field(default=None, ge=1, description="Resize percentage")
    maintain_ratio: bool = True

    @model_validator(mode="after")
    def _require_dimensions(self) -> "ResizeImageOptions":
        if self.mode == "percentage" and not self.percentage:
            raise ValueError("resize mode 'percentage' requires 'percentage'")
        if self.mode == "pixels" and not (self.width or self.height):
            raise ValueError("resize mode 'pixels' requires 'width' and/or 'height'")
        return self

    def payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"resize_mode": self.mode, "maintain_ratio": self.maintain_ratio}
        if self.mode == "percentage":
            out["percentage"] = self.percentage
        else:
            if self.width:
                out["pixels_width"] = self.width
            if self.height:
                out["pixels_height"] = self.height
        return out


class ConvertImageOptions(TransformOptions):
    transform: ClassVar[str] = "convertimage"

    to: Literal["jpg", "png", "gif", "heic"] = "jpg"

    def payload(self) -> Dict[str, Any]:
        return {"to": self.to}


class RemoveBackgroundOptions(TransformOptions):
    transform: ClassVar[str] = "removebackgroundimage"


class UpscaleImageOptions(TransformOptions):
    transform: ClassVar[str] = "upscaleimage"

    multiplier: Literal[2, 4] = Field(default=2, description="Upscale factor")

    def payload(self) -> Dict[str, Any]:
        return {"multiplier": self.multiplier}


class WatermarkImageOptions(TransformOptions):
    transform: ClassVar[str] = "watermarkimage"

    text: str = Field(..., min_length=1, description="Watermark text")
    position: Literal[
        "Center", "North", "South", "East", "West", "NorthEast", "NorthWest", "SouthEast", "SouthWest"
    ] = "Center"
    font_size: int = Field(default=14, ge=1)
    font_color: str = _hex_color()
    transparency: int = Field(default=100, ge=1, le=100, description="Opacity 1-100")
    rotation: int = Field(default=0, ge=0, le=360, description="Rotation 0-360")

    def payload(self) -> Dict[str, Any]:
        return {
            "elements": [
                {
                    "type": "text",
                    "text": self.text,
                    "gravity": self.position,
                    "font_size": self.font_size,
                    "font_color": self.font_color,
                    "transparency": self.transparency,
                    "rotation": self.rotation,
                    "x_pos_percent": 50,
                    "y_pos_percent": 50,
                    "width_percent": 100,
                    "height_percent": 100,
                }
            ]
        }


TRANSFORM_OPTIONS: Dict[str, Type[TransformOptions]] = {
    cls.transform: cls
    for cls in (
        CompressOptions,
        MergeOptions,
        SplitOptions,
        RotateOptions,
        RepairOptions,
        PdfToJpgOptions,
        ImageToPdfOptions,
        HtmlToPdfOptions,
        OfficeToPdfOptions,
        PdfaOptions,
        ValidatePdfaOptions,
        WatermarkOptions,
        PageNumberOptions,
        OcrOptions,
        ExtractOptions,
        ProtectOptions,
        UnlockOptions,
        CompressImageOptions,
        ResizeImageOptions,
        ConvertImageOptions,
        RemoveBackgroundOptions,
        UpscaleImageOptions,
        WatermarkImageOptions,
    )
}

# Transforms a kept task can be handed to via chain_tasks.
ChainableTransform = Literal[
    "compress",
    "merge",
    "split",
    "rotate",
    "repair",
    "pdfjpg",
    "imagepdf",
    "officepdf",
    "pdfa",
    "watermark",
    "pagenumber",
    "protect",
    "unlock",
    "pdfocr",
    "extract",
    "htmlpdf",
]


def options_for(transform: str, options: Optional[Dict[str, Any]] = None) -> TransformOptions:
    """Validate a raw option bag against the options model of `transform`."""

    cls = TRANSFORM_OPTIONS.get(transform)
    if cls is None:
        raise ValueError(f"Unknown transform: {transform}")
    return cls.model_validate(options or {})


# ---------------------------
# Tool input schemas
# ---------------------------


class CredentialArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    public_key: Optional[str] = Field(
        default=None, description="iLovePDF public key (defaults to ILOVEPDF_PUBLIC_KEY)"
    )
    secret_key: Optional[str] = Field(
        default=None, description="iLovePDF secret key (defaults to ILOVEPDF_SECRET_KEY)"
    )


class ImageCredentialArgs(CredentialArgs):
    model_config = ConfigDict(extra="ignore")

    image_public_key: Optional[str] = Field(
        default=None, description="iLoveIMG project public key (required for image tools)"
    )


class SingleFileArgs(CredentialArgs):
    model_config = ConfigDict(extra="ignore")

    file: str = Field(..., min_length=1, description="Path to input file or http(s) URL")
    output: Optional[str] = Field(default=None, description="Output file path")

    @model_validator(mode="after")
    def _require_output(self) -> "SingleFileArgs":
        if not self.output and not getattr(self, "keep_task", False):
            raise ValueError("output is required unless keep_task is true")
        return self


class MultiFileArgs(CredentialArgs):
    model_config = ConfigDict(extra="ignore")

    files: List[str] = Field(..., min_length=1, description="Paths or URLs, in processing order")
    output: Optional[str] = Field(default=None, description="Output file path")

    @model_validator(mode="after")
    def _require_output(self) -> "MultiFileArgs":
        if not self.output and not getattr(self, "keep_task", False):
            raise ValueError("output is required unless keep_task is true")
        return self


class KeepTaskArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    keep_task: bool = Field(
        default=False,
        description="Keep task alive for chaining instead of downloading (task auto-expires in 2 hours)",
    )


class SingleImageArgs(ImageCredentialArgs):
    model_config = ConfigDict(extra="ignore")

    file: str = Field(..., min_length=1, description="Path to image file or http(s) URL")
    output: str = Field(..., min_length=1, description="Output file path")


class CompressPdfInput(SingleFileArgs, KeepTaskArgs, CompressOptions):
    model_config = ConfigDict(extra="forbid")


class MergePdfInput(MultiFileArgs, KeepTaskArgs, MergeOptions):
    model_config = ConfigDict(extra="forbid")


class SplitPdfInput(SingleFileArgs, KeepTaskArgs, SplitOptions):
    model_config = ConfigDict(extra="forbid")


class RotatePdfInput(SingleFileArgs, KeepTaskArgs, RotateOptions):
    model_config = ConfigDict(extra="forbid")


class RepairPdfInput(SingleFileArgs, KeepTaskArgs, RepairOptions):
    model_config = ConfigDict(extra="forbid")


class PdfToJpgInput(SingleFileArgs, KeepTaskArgs, PdfToJpgOptions):
    model_config = ConfigDict(extra="forbid")


class JpgToPdfInput(MultiFileArgs, KeepTaskArgs, ImageToPdfOptions):
    model_config = ConfigDict(extra="forbid")


class HtmlToPdfInput(SingleFileArgs, KeepTaskArgs, HtmlToPdfOptions):
    model_config = ConfigDict(extra="forbid")


class OfficeToPdfInput(SingleFileArgs, KeepTaskArgs, OfficeToPdfOptions):
    model_config = ConfigDict(extra="forbid")


class PdfToPdfaInput(SingleFileArgs, KeepTaskArgs, PdfaOptions):
    model_config = ConfigDict(extra="forbid")


class ValidatePdfaInput(SingleFileArgs, ValidatePdfaOptions):
    model_config = ConfigDict(extra="forbid")


class WatermarkPdfInput(SingleFileArgs, KeepTaskArgs, WatermarkOptions):
    model_config = ConfigDict(extra="forbid")


class PageNumbersInput(SingleFileArgs, KeepTaskArgs, PageNumberOptions):
    model_config = ConfigDict(extra="forbid")


class OcrPdfInput(SingleFileArgs, KeepTaskArgs, OcrOptions):
    model_config = ConfigDict(extra="forbid")


class ExtractTextInput(SingleFileArgs, KeepTaskArgs, ExtractOptions):
    model_config = ConfigDict(extra="forbid")


class ProtectPdfInput(SingleFileArgs, KeepTaskArgs, ProtectOptions):
    model_config = ConfigDict(extra="forbid")


class UnlockPdfInput(SingleFileArgs, KeepTaskArgs, UnlockOptions):
    model_config = ConfigDict(extra="forbid")


class CompressImageInput(SingleImageArgs, CompressImageOptions):
    model_config = ConfigDict(extra="forbid")


class ResizeImageInput(SingleImageArgs, ResizeImageOptions):
    model_config = ConfigDict(extra="forbid")


class ConvertImageInput(SingleImageArgs, ConvertImageOptions):
    model_config = ConfigDict(extra="forbid")


class RemoveBackgroundInput(SingleImageArgs, RemoveBackgroundOptions):
    model_config = ConfigDict(extra="forbid")


class UpscaleImageInput(SingleImageArgs, UpscaleImageOptions):
    model_config = ConfigDict(extra="forbid")


class WatermarkImageInput(SingleImageArgs, WatermarkImageOptions):
    model_config = ConfigDict(extra="forbid")


class CheckCreditsInput(CredentialArgs):
    model_config = ConfigDict(extra="forbid")


class ChainTasksInput(CredentialArgs):
    model_config = ConfigDict(extra="forbid")

    parent_task: str = Field(..., min_length=1, description="Task ID from a previous operation run with keep_task")
    server: Optional[str] = Field(
        default=None, description="Server reported with the parent task (needed if this server did not keep it)"
    )
    next_tool: ChainableTransform = Field(..., description="Next tool to apply")
    options: Dict[str, Any] = Field(default_factory=dict, description="Options for next_tool")
    output: Optional[str] = Field(default=None, description="Output file path; omit to keep the new task alive")
    keep_task: bool = Field(default=False, description="Keep the new task alive for further chaining")

    @model_validator(mode="after")
    def _validate_next_options(self) -> "ChainTasksInput":
        try:
            options_for(self.next_tool, self.options)
        except ValidationError as e:
            raise ValueError(f"invalid options for {self.next_tool}: {e}") from e
        return self

    def next_options(self) -> TransformOptions:
        return options_for(self.next_tool, self.options)


class DownloadTaskInput(CredentialArgs):
    model_config = ConfigDict(extra="forbid")

    task: str = Field(..., min_length=1, description="Task ID of a kept task")
    server: Optional[str] = Field(default=None, description="Server reported with the kept task")
    output: str = Field(..., min_length=1, description="Output file path")


class Signer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Signer full name")
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Signer email address")


class CreateSignatureRequestInput(CredentialArgs):
    model_config = ConfigDict(extra="forbid")

    files: List[str] = Field(..., min_length=1, max_length=5, description="Paths to PDF files to be signed (max 5)")
    signers: List[Signer] = Field(..., min_length=1, max_length=50, description="List of signers (max 50)")
    subject: Optional[str] = Field(default=None, description="Email subject")
    message: Optional[str] = Field(default=None, description="Email message body")
    expiration_days: int = Field(default=15, ge=1, description="Days until signature request expires")
    reminders: bool = Field(default=True, description="Send automatic reminders")


class ListSignaturesInput(CredentialArgs):
    model_config = ConfigDict(extra="forbid")

    page: int = Field(default=1, ge=1, description="Page number")
    status: Optional[Literal["pending", "signed", "voided", "expired"]] = Field(
        default=None, description="Filter by status"
    )


class SignatureTokenInput(CredentialArgs):
    model_config = ConfigDict(extra="forbid")

    signature_token: str = Field(..., min_length=1, description="Signature request token")


class DownloadSignedFilesInput(SignatureTokenInput):
    model_config = ConfigDict(extra="forbid")

    output: str = Field(..., min_length=1, description="Output file path")


def tool_input_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    """JSON schema advertised in tools/list for a tool input model."""

    schema = model.model_json_schema()
    schema.pop("title", None)
    return schema


def to_jsonable(obj: Any) -> Any:
    """Convert Pydantic models to JSON-serializable dicts."""

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, list):
        return [to_jsonable(x) for x in obj]
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    return obj
