from __future__ import annotations

from ..schemas import (
    CompressPdfInput,
    ExtractTextInput,
    HtmlToPdfInput,
    JpgToPdfInput,
    MergePdfInput,
    OcrPdfInput,
    OfficeToPdfInput,
    PageNumbersInput,
    PdfToJpgInput,
    PdfToPdfaInput,
    ProtectPdfInput,
    RepairPdfInput,
    RotatePdfInput,
    SplitPdfInput,
    UnlockPdfInput,
    WatermarkPdfInput,
)
from .base import transform_tool

# Document tools. Each accepts keep_task to leave the processed task alive for chain_tasks.
PDF_TOOLS = (
    transform_tool(
        "compress_pdf",
        "Compress a PDF file to reduce its size. Compression levels: low, recommended, extreme.",
        CompressPdfInput,
        "PDF compressed",
    ),
    transform_tool(
        "merge_pdf",
        "Merge multiple PDF files into one. Files are merged in the order provided.",
        MergePdfInput,
        "PDFs merged",
    ),
    transform_tool(
        "split_pdf",
        "Split a PDF into multiple files by page ranges, fixed intervals, file size, or by removing pages.",
        SplitPdfInput,
        "PDF split",
    ),
    transform_tool(
        "rotate_pdf",
        "Rotate PDF pages by 90, 180, or 270 degrees.",
        RotatePdfInput,
        "PDF rotated",
    ),
    transform_tool(
        "repair_pdf",
        "Repair a damaged or corrupt PDF file.",
        RepairPdfInput,
        "PDF repaired",
    ),
    transform_tool(
        "pdf_to_jpg",
        "Convert PDF pages to JPG images. Mode 'pages' converts each page, 'extract' extracts embedded images.",
        PdfToJpgInput,
        "PDF converted to JPG",
    ),
    transform_tool(
        "jpg_to_pdf",
        "Convert JPG/PNG images to PDF. Supports orientation, margins, and page size options.",
        JpgToPdfInput,
        "Images converted to PDF",
    ),
    transform_tool(
        "html_to_pdf",
        "Convert HTML webpage to PDF. Provide a URL or HTML file path.",
        HtmlToPdfInput,
        "HTML converted to PDF",
    ),
    transform_tool(
        "office_to_pdf",
        "Convert Word (DOC/DOCX), Excel (XLS/XLSX), or PowerPoint (PPT/PPTX) to PDF.",
        OfficeToPdfInput,
        "Office file converted to PDF",
    ),
    transform_tool(
        "pdf_to_pdfa",
        "Convert PDF to PDF/A format for long-term archiving. Supports different conformance levels.",
        PdfToPdfaInput,
        "PDF converted to PDF/A",
    ),
    transform_tool(
        "watermark_pdf",
        "Add a text watermark to PDF. Supports positioning, rotation, transparency, and font options.",
        WatermarkPdfInput,
        "Watermark added",
    ),
    transform_tool(
        "page_numbers",
        "Add page numbers to PDF with customizable position, font, and formatting.",
        PageNumbersInput,
        "Page numbers added",
    ),
    transform_tool(
        "ocr_pdf",
        "Apply OCR to make scanned PDFs searchable and selectable. Supports 100+ languages.",
        OcrPdfInput,
        "OCR applied",
    ),
    transform_tool(
        "extract_text",
        "Extract text content from PDF. Returns extracted text with optional position details.",
        ExtractTextInput,
        "Text extracted",
    ),
    transform_tool(
        "protect_pdf",
        "Add password protection to PDF. Encrypt PDF to prevent unauthorized access.",
        ProtectPdfInput,
        "PDF protected",
    ),
    transform_tool(
        "unlock_pdf",
        "Remove password protection from PDF. Unlock encrypted PDF files.",
        UnlockPdfInput,
        "PDF unlocked",
    ),
)
