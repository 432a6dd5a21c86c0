import json
from typing import Any, Dict, Iterator, List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from emailgen.api.deps import Services, current_user, get_services
from emailgen.errors import EmailGenError, MissingParameterError
from emailgen.models import ChatMessage, ConversionOptions, RenderProvider, TargetPlatform
from emailgen.patch.engine import apply_modification, revert_modification
from emailgen.services.assistant import static_suggestions
from emailgen.suggestions import parse_modifications

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuggestionsRequest(CamelModel):
    html_code: str = ""
    ai_model: Optional[str] = None
    static: bool = False


class ChatRequest(CamelModel):
    html_code: str = ""
    user_message: str = ""
    chat_history: List[ChatMessage] = Field(default_factory=list)
    ai_model: Optional[str] = None


class CommandRequest(CamelModel):
    html_code: str = ""
    command: str = ""
    ai_model: Optional[str] = None


class ModifyRequest(CamelModel):
    code: str = ""
    request: str = ""


class PatchRequest(CamelModel):
    document: str
    modification: Dict[str, Any]


class QARequest(CamelModel):
    html: str = ""
    rule_ids: Optional[List[str]] = None
    email_id: Optional[str] = None


class SaveVersionRequest(CamelModel):
    email_id: str = ""
    html: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RollbackRequest(CamelModel):
    email_id: str = ""
    version_number: Optional[int] = None


class DeployRequest(CamelModel):
    email_id: str = ""
    email_name: str = ""
    version_id: Optional[str] = None
    folder_id: Optional[str] = None


class RenderTestRequest(CamelModel):
    html: str = ""
    subject: Optional[str] = None
    provider: RenderProvider = RenderProvider.LITMUS


def _flag(value: Optional[str]) -> bool:
    # Form checkboxes default to on; only an explicit "false" turns them off
    return value != "false"


@router.get("/health")
def health():
    return {"status": "ok"}


# Conversion

def _read_upload(file: Optional[UploadFile]) -> bytes:
    if file is None or not file.filename:
        raise MissingParameterError("No file provided")
    return file.file.read()


def _options(make_responsive, optimize_for_email, target_platform) -> ConversionOptions:
    try:
        platform = TargetPlatform(target_platform or TargetPlatform.SFMC.value)
    except ValueError:
        raise MissingParameterError(f"Unknown targetPlatform: {target_platform}") from None
    return ConversionOptions(
        make_responsive=_flag(make_responsive),
        optimize_for_email=_flag(optimize_for_email),
        target_platform=platform,
    )


@router.post("/convert")
def convert(
    file: Optional[UploadFile] = File(None),
    make_responsive: Optional[str] = Form(None, alias="makeResponsive"),
    optimize_for_email: Optional[str] = Form(None, alias="optimizeForEmail"),
    target_platform: Optional[str] = Form(None, alias="targetPlatform"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    data = _read_upload(file)
    result = services.conversion.convert(
        file.filename, data, user_id, _options(make_responsive, optimize_for_email, target_platform)
    )
    return result.model_dump(by_alias=True, exclude_none=True)


@router.post("/convert/stream")
def convert_stream(
    file: Optional[UploadFile] = File(None),
    make_responsive: Optional[str] = Form(None, alias="makeResponsive"),
    optimize_for_email: Optional[str] = Form(None, alias="optimizeForEmail"),
    target_platform: Optional[str] = Form(None, alias="targetPlatform"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    data = _read_upload(file)
    events = services.conversion.stream_conversion(
        file.filename, data, user_id, _options(make_responsive, optimize_for_email, target_platform)
    )
    return StreamingResponse(
        events,
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/conversions/{conversion_id}")
def get_conversion(
    conversion_id: str,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    return services.conversion.get_conversion(conversion_id, user_id)


# Code assistant

@router.post("/code-assistant/suggestions")
def suggestions(
    body: SuggestionsRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not body.html_code:
        raise MissingParameterError("Missing HTML code parameter")
    if body.static:
        found = static_suggestions(body.html_code)
    else:
        found = services.assistant.analyze_suggestions(body.html_code, body.ai_model)
    return {"suggestions": [s.model_dump(by_alias=True, exclude_none=True) for s in found]}


@router.post("/code-assistant/chat")
def chat(
    body: ChatRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    message = services.assistant.chat(
        body.html_code, body.user_message, user_id, body.chat_history, body.ai_model
    )
    return {"message": message.model_dump()}


def _sse(chunks: Iterator[str]) -> Iterator[str]:
    try:
        for text in chunks:
            yield f"data: {json.dumps({'text': text})}\n\n"
    except EmailGenError as exc:
        logger.error("Chat stream failed", error=str(exc))
        yield f"data: {json.dumps({'error': str(exc)})}\n\n"
    yield "data: [DONE]\n\n"


@router.post("/code-assistant/chat/stream")
def chat_stream(
    body: ChatRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    chunks = services.assistant.stream_chat(
        body.html_code, body.user_message, user_id, body.chat_history, body.ai_model
    )
    return StreamingResponse(
        _sse(chunks),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/code-assistant/command")
def command(
    body: CommandRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not body.command:
        raise MissingParameterError("Missing command parameter")
    return services.assistant.execute_command(body.html_code, body.command, user_id, body.ai_model)


@router.post("/code-assistant/analyze-and-modify")
def analyze_and_modify(
    body: ModifyRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    reply = services.assistant.analyze_and_modify(body.code, body.request)
    return {
        "response": reply.response,
        "modifications": [m.to_wire() for m in reply.modifications],
    }


# Patching

@router.post("/patch/apply")
def patch_apply(body: PatchRequest, user_id: str = Depends(current_user)):
    [modification] = parse_modifications([body.modification])
    result = apply_modification(body.document, modification)
    return {"document": result.document, "modification": result.modification.to_wire()}


@router.post("/patch/revert")
def patch_revert(body: PatchRequest, user_id: str = Depends(current_user)):
    [modification] = parse_modifications([body.modification])
    result = revert_modification(body.document, modification)
    return {"document": result.document, "modification": result.modification.to_wire()}


# QA

@router.post("/qa/validate")
def qa_validate(
    body: QARequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not body.html:
        raise MissingParameterError("Missing HTML content")
    report = services.qa.validate(body.html, body.rule_ids, body.email_id, user_id)
    return report.model_dump(by_alias=True, mode="json")


@router.get("/qa/rules")
def qa_rules(
    active_only: bool = Query(True, alias="activeOnly"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    rules = services.qa.load_rules(active_only=active_only)
    return {"rules": [r.model_dump(mode="json") for r in rules]}


# Versions

@router.post("/versions")
def save_version(
    body: SaveVersionRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not body.email_id or not body.html:
        raise MissingParameterError("emailId and html are required")
    metadata = {"userId": user_id, **body.metadata}
    version = services.versions.save_version(body.email_id, body.html, metadata)
    return version.model_dump()


@router.get("/versions")
def get_versions(
    email_id: Optional[str] = Query(None, alias="emailId"),
    version_number: Optional[int] = Query(None, alias="versionNumber"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not email_id:
        raise MissingParameterError("emailId is required")
    if version_number is not None:
        return services.versions.get_version(email_id, version_number).model_dump()
    return {"versions": [v.model_dump() for v in services.versions.get_versions(email_id)]}


@router.post("/versions/rollback")
def rollback(
    body: RollbackRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not body.email_id or body.version_number is None:
        raise MissingParameterError("emailId and versionNumber are required")
    version = services.versions.rollback_to_version(body.email_id, body.version_number, user_id)
    return version.model_dump()


@router.get("/versions/diff")
def diff_versions(
    email_id: Optional[str] = Query(None, alias="emailId"),
    from_version: Optional[int] = Query(None, alias="from"),
    to_version: Optional[int] = Query(None, alias="to"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not email_id or from_version is None or to_version is None:
        raise MissingParameterError("emailId, from and to are required")
    modifications = services.versions.diff_versions(email_id, from_version, to_version)
    return {"modifications": [m.to_wire() for m in modifications]}


# Deployment and render tests

@router.post("/deploy")
def deploy(
    body: DeployRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    return services.deployments.deploy_email(
        body.email_id, body.email_name, user_id, body.version_id, body.folder_id
    )


@router.get("/deploy")
def list_deployments(
    email_id: Optional[str] = Query(None, alias="emailId"),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    if not email_id:
        raise MissingParameterError("emailId is required")
    return {"deployments": services.deployments.list_deployments(email_id)}


@router.post("/render-tests")
def submit_render_test(
    body: RenderTestRequest,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    return services.render_tests.submit_render_test(body.html, user_id, body.subject, body.provider)


@router.get("/render-tests/{test_id}")
def render_test_status(
    test_id: str,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
):
    return services.render_tests.render_test_status(test_id)
