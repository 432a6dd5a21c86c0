from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Header, HTTPException, Request

from emailgen.config import Settings
from emailgen.llm import AnthropicClient, GeminiClient, TextModel
from emailgen.services.assistant import CodeAssistantService
from emailgen.services.conversion import ConversionService
from emailgen.services.deploy import DeploymentService, RenderTestService
from emailgen.services.qa import QAService
from emailgen.services.versions import VersionControl
from emailgen.store import Store, build_store


@dataclass
class Services:
    conversion: ConversionService
    assistant: CodeAssistantService
    qa: QAService
    versions: VersionControl
    deployments: DeploymentService
    render_tests: RenderTestService


def build_services(
    settings: Settings,
    store: Optional[Store] = None,
    vision: Optional[GeminiClient] = None,
    providers: Optional[Dict[str, TextModel]] = None,
    modify_model: Optional[TextModel] = None,
) -> Services:
    """Wires every service from settings. Any collaborator can be passed in."""
    store = store or build_store(settings)
    vision = vision or GeminiClient(settings.gemini_api_key, settings.gemini_model)
    providers = providers or {
        "anthropic": AnthropicClient(settings.anthropic_api_key, settings.anthropic_fast_model),
        "gemini": GeminiClient(settings.gemini_api_key, settings.gemini_text_model),
    }
    modify_model = modify_model or AnthropicClient(settings.anthropic_api_key, settings.anthropic_model)

    versions = VersionControl(store)
    return Services(
        conversion=ConversionService(store, vision),
        assistant=CodeAssistantService(store, providers, modify_model),
        qa=QAService(store),
        versions=versions,
        deployments=DeploymentService(settings, store, versions),
        render_tests=RenderTestService(settings, store),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    # The identity provider sits in front of the API and forwards the user id
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id
