import io
import json

import pytest
from pypdf import PdfReader

from emailgen.errors import ConversionError, NotFoundError, UnsupportedFileTypeError
from emailgen.models import ConversionOptions, TargetPlatform
from emailgen.services.conversion import (
    CONVERSIONS_TABLE,
    DESIGN_BUCKET,
    ConversionService,
    build_prompt,
    split_pdf_pages,
    validate_file_type,
)
from fakes import FakeVisionModel, make_pdf


def test_split_pdf_into_single_pages(pdf_bytes):
    pages = split_pdf_pages(pdf_bytes)

    assert len(pages) == 2
    for page in pages:
        assert len(PdfReader(io.BytesIO(page)).pages) == 1


def test_unreadable_pdf_is_sent_whole():
    data = b"this is not a pdf"
    assert split_pdf_pages(data) == [data]


@pytest.mark.parametrize("name", ["design.png", "design.sketch", "design"])
def test_only_pdf_is_accepted(name):
    with pytest.raises(UnsupportedFileTypeError):
        validate_file_type(name)


def test_pdf_extension_is_case_insensitive():
    assert validate_file_type("Design.PDF") == ".pdf"


def test_prompt_reflects_pages_and_options():
    prompt = build_prompt("spring.pdf", 3, ConversionOptions())
    assert "Page 2 contains the mobile version" in prompt
    assert "remaining 1 pages" in prompt
    assert "Salesforce Marketing Cloud" in prompt

    plain = build_prompt(
        "spring.pdf",
        1,
        ConversionOptions(make_responsive=False, optimize_for_email=False, target_platform=TargetPlatform.GENERIC),
    )
    assert "Page 2" not in plain
    assert "Optimized for desktop viewing" in plain
    assert "Compatible with web browsers" in plain
    assert "standard HTML practices" in plain


def test_convert_cleans_and_stores_result(store, vision_model, pdf_bytes):
    service = ConversionService(store, vision_model)

    result = service.convert("spring.pdf", pdf_bytes, user_id="user-1")

    assert result.html == "<table><tr><td>Hello</td></tr></table>"
    assert result.metadata.design_type == "PDF"
    assert result.metadata.user_id == "user-1"
    assert result.metadata.conversion_id

    # Prompt plus one inline part per page
    [parts] = vision_model.calls
    assert "text" in parts[0]
    assert [p["inline_data"]["mime_type"] for p in parts[1:]] == ["application/pdf"] * 2

    row = service.get_conversion(result.metadata.conversion_id)
    assert row["html_content"] == result.html
    assert row["storage_path"].endswith("_spring.pdf")
    assert store.download(DESIGN_BUCKET, row["storage_path"]) == pdf_bytes


def test_convert_rejects_non_pdf_before_upload(store, vision_model):
    service = ConversionService(store, vision_model)
    with pytest.raises(UnsupportedFileTypeError):
        service.convert("design.png", b"png", user_id="u")
    assert vision_model.calls == []


def test_model_failure_becomes_conversion_error(store, pdf_bytes):
    service = ConversionService(store, FakeVisionModel(fail_after=0))
    with pytest.raises(ConversionError):
        service.convert("spring.pdf", pdf_bytes)
    assert store.select(CONVERSIONS_TABLE) == []


def _events(stream):
    return [json.loads(line) for line in "".join(stream).splitlines()]


def test_stream_conversion_events(store):
    vision = FakeVisionModel(chunks=["```html\n<table>", "</table>\n```"])
    service = ConversionService(store, vision)

    events = _events(service.stream_conversion("spring.pdf", make_pdf(1), user_id="u"))

    assert [e["status"] for e in events] == ["processing", "chunk", "chunk", "complete"]
    assert events[1]["data"] == "```html\n<table>"
    assert events[-1]["html"] == "<table></table>"
    assert events[-1]["metadata"]["originalFileName"] == "spring.pdf"
    assert events[-1]["metadata"]["conversionId"]


def test_stream_conversion_reports_errors(store):
    vision = FakeVisionModel(chunks=["<table>", "never sent"], fail_after=1)
    service = ConversionService(store, vision)

    events = _events(service.stream_conversion("spring.pdf", make_pdf(1)))

    assert [e["status"] for e in events] == ["processing", "chunk", "error"]
    assert "connection reset" in events[-1]["error"]


def test_unknown_conversion(store, vision_model):
    with pytest.raises(NotFoundError):
        ConversionService(store, vision_model).get_conversion("nope")


def test_conversion_is_only_visible_to_its_owner(store, vision_model, pdf_bytes):
    service = ConversionService(store, vision_model)
    result = service.convert("spring.pdf", pdf_bytes, user_id="user-1")

    assert service.get_conversion(result.metadata.conversion_id, "user-1")["user_id"] == "user-1"
    with pytest.raises(NotFoundError):
        service.get_conversion(result.metadata.conversion_id, "user-2")
