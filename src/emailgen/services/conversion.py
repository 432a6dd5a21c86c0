"""
Design file to HTML email conversion with the Gemini vision model.

The uploaded PDF is split into single-page PDFs so the model can tell the
desktop page from the mobile page; each page is sent as its own inline part.
"""

import io
import json
import os
import time
from typing import Any, Dict, Iterator, List, Optional

import structlog
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from emailgen.errors import (
    ConversionError,
    EmailGenError,
    ModelProviderError,
    NotFoundError,
    StoreError,
    UnsupportedFileTypeError,
)
from emailgen.llm import GeminiClient, pdf_part
from emailgen.markup import extract_html
from emailgen.models import ConversionMetadata, ConversionOptions, ConversionResult, TargetPlatform
from emailgen.store import Store

logger = structlog.get_logger(__name__)

DESIGN_BUCKET = "design-files"
CONVERSIONS_TABLE = "email_conversions"
SUPPORTED_EXTENSIONS = (".pdf",)

GENERATION_CONFIG = {
    "temperature": 0,
    "topP": 0.95,
    "maxOutputTokens": 8192,
}


def file_extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lower()


def validate_file_type(file_name: str) -> str:
    extension = file_extension(file_name)
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileTypeError(
            f"Unsupported file type: {extension or file_name}. Only PDF files are accepted."
        )
    return extension


def split_pdf_pages(data: bytes) -> List[bytes]:
    """
    Returns one single-page PDF per page of data.

    Pages that cannot be copied are skipped. If nothing could be split, the
    whole document is returned as the only element.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = list(reader.pages)
    except (PyPdfError, ValueError, OSError) as exc:
        logger.warning("Could not read PDF; sending it whole", error=str(exc))
        return [data]

    logger.info(f"PDF has {len(pages)} pages")

    split = []
    for i, page in enumerate(pages, start=1):
        try:
            writer = PdfWriter()
            writer.add_page(page)
            buffer = io.BytesIO()
            writer.write(buffer)
            split.append(buffer.getvalue())
        except (PyPdfError, ValueError, KeyError) as exc:
            logger.warning(f"Skipping page {i}", error=str(exc))

    if not split:
        logger.info("No pages extracted; sending the whole PDF")
        return [data]
    return split


def build_prompt(file_name: str, page_count: int, options: ConversionOptions) -> str:
    layout = ["- Page 1 contains the desktop version of the email design"]
    if page_count >= 2:
        layout.append("- Page 2 contains the mobile version of the email design")
    if page_count > 2:
        layout.append(
            f"- The remaining {page_count - 2} pages contain additional design elements or content"
        )

    target = []
    if options.make_responsive:
        target += [
            "- Fully responsive for all devices",
            "- The desktop version in page 1 should be used to create the desktop view of the email",
            "- The mobile version in page 2 should be used to create the mobile view of the email using media queries",
        ]
    else:
        target.append("- Optimized for desktop viewing")
    target.append(
        "- Compatible with email clients" if options.optimize_for_email
        else "- Compatible with web browsers"
    )
    target.append(
        "- Specifically optimized for Salesforce Marketing Cloud"
        if options.target_platform == TargetPlatform.SFMC
        else "- Using standard HTML practices"
    )

    kind = "an HTML email" if options.optimize_for_email else "HTML"
    nl = "\n"

    return f"""You are an expert email developer specializing in converting design files to responsive HTML emails.

I have a PDF design file named "{file_name}" with {page_count} page(s):
{nl.join(layout)}

Implement the exact design shown, including all text content, images, buttons,
fonts, colors and spacing. Do not use placeholders like "desktop content" or
"mobile content".

Please convert these designs into {kind} that is:
{nl.join(target)}

The HTML should:
1. Use table-based layout for email client compatibility
2. Include proper meta tags and media queries for responsiveness
3. Use inline CSS for maximum email client compatibility
4. Match font sizes, spacing and layouts of the designs precisely
5. Follow accessibility best practices
6. Include comments identifying desktop vs. mobile-specific code

Please provide only the complete HTML code without any explanations.
"""


class ConversionService:
    def __init__(self, store: Store, gemini: GeminiClient):
        self.store = store
        self.gemini = gemini

    def upload_design(self, file_name: str, data: bytes) -> str:
        path = f"{int(time.time() * 1000)}_{file_name}"
        return self.store.upload(DESIGN_BUCKET, path, data, "application/pdf")

    def _prepare(self, file_name: str, data: bytes, options: ConversionOptions) -> List[Dict[str, Any]]:
        pages = split_pdf_pages(data)
        logger.info(f"Sending {len(pages)} page(s) of {file_name} to {self.gemini.model}")
        return [{"text": build_prompt(file_name, len(pages), options)}] + [pdf_part(p) for p in pages]

    def _metadata(self, file_name: str, options: ConversionOptions, user_id: Optional[str]) -> ConversionMetadata:
        return ConversionMetadata(
            original_file_name=file_name,
            design_type=file_extension(file_name).lstrip(".").upper(),
            responsive=options.make_responsive,
            user_id=user_id,
        )

    def _persist(self, html: str, metadata: ConversionMetadata, storage_path: str) -> ConversionMetadata:
        try:
            row = self.store.insert(
                CONVERSIONS_TABLE,
                {
                    "user_id": metadata.user_id,
                    "original_filename": metadata.original_file_name,
                    "storage_path": storage_path,
                    "html_content": html,
                    "metadata": metadata.model_dump(by_alias=True, exclude_none=True),
                    "created_at": metadata.conversion_timestamp,
                },
            )
        except StoreError as exc:
            logger.error("Failed to store conversion", error=str(exc))
            return metadata
        return metadata.model_copy(update={"conversion_id": row["id"]})

    def convert(
        self,
        file_name: str,
        data: bytes,
        user_id: Optional[str] = None,
        options: Optional[ConversionOptions] = None,
    ) -> ConversionResult:
        options = options or ConversionOptions()
        validate_file_type(file_name)
        storage_path = self.upload_design(file_name, data)

        parts = self._prepare(file_name, data, options)
        try:
            raw = self.gemini.generate_content(parts, GENERATION_CONFIG)
        except ModelProviderError as exc:
            raise ConversionError(f"Failed to convert design to HTML: {exc}") from exc

        html = extract_html(raw)
        logger.info(f"HTML generated for {file_name}", length=len(html))

        metadata = self._persist(html, self._metadata(file_name, options, user_id), storage_path)
        return ConversionResult(html=html, metadata=metadata)

    def stream_conversion(
        self,
        file_name: str,
        data: bytes,
        user_id: Optional[str] = None,
        options: Optional[ConversionOptions] = None,
    ) -> Iterator[str]:
        """
        Validates and uploads eagerly, then returns an iterator of
        newline-terminated JSON events for the model output.
        """
        options = options or ConversionOptions()
        validate_file_type(file_name)
        storage_path = self.upload_design(file_name, data)
        parts = self._prepare(file_name, data, options)
        return self._events(file_name, parts, options, user_id, storage_path)

    def _events(self, file_name, parts, options, user_id, storage_path) -> Iterator[str]:
        def event(payload: Dict[str, Any]) -> str:
            return json.dumps(payload) + "\n"

        yield event({"status": "processing", "message": "Converting design to HTML..."})

        chunks = []
        try:
            for text in self.gemini.stream_content(parts, GENERATION_CONFIG):
                chunks.append(text)
                yield event({"status": "chunk", "data": text})
        except EmailGenError as exc:
            logger.error("Streaming conversion failed", error=str(exc))
            yield event({"status": "error", "error": f"Conversion failed: {exc}"})
            return

        html = extract_html("".join(chunks))
        metadata = self._persist(html, self._metadata(file_name, options, user_id), storage_path)
        yield event(
            {
                "status": "complete",
                "message": "Conversion completed",
                "html": html,
                "metadata": metadata.model_dump(by_alias=True, exclude_none=True),
            }
        )

    def get_conversion(self, conversion_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        filters = {"id": conversion_id}
        if user_id is not None:
            filters["user_id"] = user_id
        row = self.store.first(CONVERSIONS_TABLE, filters)
        if row is None:
            raise NotFoundError(f"Conversion {conversion_id} not found")
        return row
