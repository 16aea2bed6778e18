"""Document text loading using pdfplumber."""

from pathlib import Path

import pdfplumber
import structlog

from csm_pipeline.extraction.chunker import DEFAULT_PAGE_DELIMITER

logger = structlog.get_logger(__name__)

TEXT_SUFFIXES = {".txt", ".text", ".md"}


class PDFExtractionError(Exception):
    """Error during PDF extraction."""

    pass


def extract_pdf_pages(pdf_path: str | Path) -> list[str]:
    """Extract cleaned text for each page of a PDF.

    Args:
        pdf_path: Path to the PDF file.

    Returns:
        One string per page, in page order. Pages without text are empty.

    Raises:
        PDFExtractionError: If the file is missing, not a PDF, or unreadable.
    """
    pdf_path = Path(pdf_path)

    if not pdf_path.exists():
        raise PDFExtractionError(f"PDF file not found: {pdf_path}")

    if not pdf_path.suffix.lower() == ".pdf":
        raise PDFExtractionError(f"File is not a PDF: {pdf_path}")

    logger.info("extracting_pdf", path=str(pdf_path))

    pages: list[str] = []
    try:
        with pdfplumber.open(pdf_path) as pdf:
            logger.info("pdf_opened", total_pages=len(pdf.pages))

            for page_num, page in enumerate(pdf.pages, start=1):
                text = _clean_page_text(page.extract_text() or "")
                pages.append(text)
                logger.debug("page_extracted", page=page_num, chars=len(text))

    except Exception as e:
        logger.error("pdf_extraction_failed", error=str(e))
        raise PDFExtractionError(f"Failed to extract PDF: {e}") from e

    logger.info("pdf_extraction_complete", pages=len(pages), total_chars=sum(len(p) for p in pages))
    return pages


def extract_document_text(path: str | Path, delimiter: str = DEFAULT_PAGE_DELIMITER) -> str:
    """Load a document as page-delimited text.

    PDFs are extracted page by page and joined with the delimiter; plain
    text files are returned as-is, keeping any form feeds they contain.

    Args:
        path: Path to a .pdf or text file.
        delimiter: Separator placed between PDF pages.

    Returns:
        Document text.
    """
    path = Path(path)
    if path.suffix.lower() == ".pdf":
        return delimiter.join(extract_pdf_pages(path))
    if path.suffix.lower() not in TEXT_SUFFIXES:
        logger.warning("unknown_document_type_reading_as_text", path=str(path))
    return path.read_text(encoding="utf-8")


def _clean_page_text(text: str) -> str:
    """Clean extracted page text.

    Strips trailing whitespace from lines, collapses runs of spaces and
    limits blank lines to one paragraph break.

    Args:
        text: Raw extracted text.

    Returns:
        Cleaned text.
    """
    if not text:
        return ""

    cleaned_lines = []
    for line in text.split("\n"):
        line = line.rstrip()
        while "  " in line:
            line = line.replace("  ", " ")
        cleaned_lines.append(line)

    result = "\n".join(cleaned_lines)

    while "\n\n\n" in result:
        result = result.replace("\n\n\n", "\n\n")

    # Form feeds inside a page would be read as page breaks
    return result.replace("\f", " ").strip()
