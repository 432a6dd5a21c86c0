import uuid
from typing import Dict, Iterator, List, Optional

import structlog

from emailgen.errors import (
    ConfigurationError,
    MissingParameterError,
    StoreError,
    UnsupportedCommandError,
)
from emailgen.llm import TextModel
from emailgen.markup import extract_html
from emailgen.models import (
    AssistantReply,
    ChatMessage,
    CodeSuggestion,
    MessageRole,
    SuggestionType,
    utc_now,
)
from emailgen.store import Store
from emailgen.suggestions import parse_assistant_reply, parse_code_suggestions

logger = structlog.get_logger(__name__)

CHAT_TABLE = "chat_messages"
COMMANDS_TABLE = "code_command_results"

DEFAULT_PROVIDER = "anthropic"

COMMAND_INSTRUCTIONS = {
    "format": "Add appropriate indentation and line breaks for readability",
    "minify": "Remove all unnecessary whitespace, comments, and line breaks",
    "validate": "Return the SAME code, but create a JSON report of any validation issues",
    "add-header": "Insert a professional email header component at the appropriate location",
    "add-footer": "Insert a professional email footer with unsubscribe link at the appropriate location",
    "add-button": "Insert an email-compatible button component at an appropriate location",
}

SUGGESTIONS_PROMPT = """You are an expert email HTML code assistant. Analyze the following HTML code for an email template and identify potential issues, improvements, or suggestions:

{html}

Please provide a JSON array of suggestions, with each suggestion having the following structure:
{{
  "id": "unique-id",
  "title": "Brief title of the suggestion",
  "description": "Detailed explanation of the issue or suggestion",
  "code": "Corrected or example code snippet (if applicable)",
  "lineNumber": line number where the issue occurs (if applicable),
  "type": "one of: improvement, error, warning, info"
}}

Focus on email-specific issues such as:
1. Missing DOCTYPE declarations
2. Missing viewport meta tags for responsiveness
3. CSS that does not work in email clients (float, position:absolute, ...)
4. Accessibility problems (missing alt text, poor contrast, ...)
5. Table layout issues
6. Email client compatibility concerns

Return ONLY a valid JSON array without any explanations or code fences.
"""

CHAT_SYSTEM_PROMPT = """You are an expert email HTML code assistant helping developers create and improve HTML email templates.
You know email HTML best practices, cross-client compatibility, responsive email design,
accessibility for email and Salesforce Marketing Cloud specifics.

The user is working on the following HTML code:

{html}

Give concise answers. When suggesting code changes, explain why they are needed and
provide snippets that can be applied. Focus on email-specific concerns.
"""

COMMAND_PROMPT = """You are an expert email HTML code assistant. I need you to {command} the following HTML code:

{html}

Please provide only the processed HTML code with no explanations.
Additional instructions: {instructions}
"""

MODIFY_PROMPT = """You are an expert HTML email developer assistant that helps users modify their HTML email templates.

Given the following HTML code:
```html
{code}
```

And this user request: "{request}"

Analyze the entire document before suggesting changes. Each change must keep proper
nesting, target elements that actually exist, and use table layouts with inline CSS.
If the request is unclear, ask 1-2 specific questions in your response.

Your response must be JSON in this format:
{{
  "response": "Explanation of the changes, or follow-up questions",
  "modifications": [
    {{
      "description": "Brief description of what this change does",
      "originalCode": "The exact code being replaced",
      "newCode": "The new code to use instead",
      "startLine": 10,
      "endLine": 12,
      "startCol": 0,
      "endCol": 20,
      "contextValidation": "How you verified this change fits the document"
    }}
  ]
}}

startLine and endLine are 1-indexed line numbers in the original code. startCol and
endCol are optional and only for single-line changes. Do not include line numbers in the code.
"""


def static_suggestions(html: str) -> List[CodeSuggestion]:
    """Checks that need no model call."""
    suggestions = []
    if "doctype" not in html.lower():
        suggestions.append(
            CodeSuggestion(
                id="missing-doctype",
                title="Missing DOCTYPE declaration",
                description="Add a DOCTYPE declaration to ensure proper rendering across email clients.",
                code="<!DOCTYPE html>",
                line_number=1,
                type=SuggestionType.ERROR,
            )
        )
    if "meta" not in html or "viewport" not in html:
        suggestions.append(
            CodeSuggestion(
                id="missing-viewport",
                title="Missing viewport meta tag",
                description="Add a viewport meta tag for better responsive behavior.",
                code='<meta name="viewport" content="width=device-width, initial-scale=1.0">',
                type=SuggestionType.WARNING,
            )
        )
    if "float" in html:
        suggestions.append(
            CodeSuggestion(
                id="avoid-float",
                title="Avoid using float in email templates",
                description="Float is poorly supported in many email clients. Use table-based layouts instead.",
                type=SuggestionType.WARNING,
            )
        )
    return suggestions


class CodeAssistantService:
    """
    Email-markup assistant backed by one of several text models.

    `providers` maps a provider name ("anthropic", "gemini") to the model used
    for quick calls; `modify_model` is the stronger model used to produce
    line-ranged modifications.
    """
    def __init__(self, store: Store, providers: Dict[str, TextModel], modify_model: TextModel):
        self.store = store
        self.providers = providers
        self.modify_model = modify_model

    def model_for(self, provider: Optional[str]) -> TextModel:
        name = provider or DEFAULT_PROVIDER
        try:
            return self.providers[name]
        except KeyError:
            raise ConfigurationError(f"Unknown AI model provider: {name}") from None

    def analyze_suggestions(self, html: str, provider: Optional[str] = None) -> List[CodeSuggestion]:
        if not html:
            raise MissingParameterError("HTML code is required")
        model = self.model_for(provider)
        logger.info("Analyzing HTML for suggestions", provider=model.name)
        text = model.complete(SUGGESTIONS_PROMPT.format(html=html), max_tokens=4000, temperature=0.2)
        return parse_code_suggestions(text)

    def chat(
        self,
        html: str,
        message: str,
        user_id: str,
        history: Optional[List[ChatMessage]] = None,
        provider: Optional[str] = None,
    ) -> ChatMessage:
        if not message:
            raise MissingParameterError("A user message is required")
        model = self.model_for(provider)
        reply = model.complete(
            message,
            system=CHAT_SYSTEM_PROMPT.format(html=html),
            history=history,
            max_tokens=4000,
            temperature=0.7,
        )
        assistant_message = ChatMessage(
            id=str(uuid.uuid4()), role=MessageRole.ASSISTANT, content=reply, timestamp=utc_now()
        )
        self._save_exchange(user_id, html, message, assistant_message, model.name)
        return assistant_message

    def stream_chat(
        self,
        html: str,
        message: str,
        user_id: str,
        history: Optional[List[ChatMessage]] = None,
        provider: Optional[str] = None,
    ) -> Iterator[str]:
        if not message:
            raise MissingParameterError("A user message is required")
        model = self.model_for(provider)
        return self._stream_chat(model, html, message, user_id, history)

    def _stream_chat(self, model, html, message, user_id, history) -> Iterator[str]:
        chunks = []
        for text in model.stream(
            message,
            system=CHAT_SYSTEM_PROMPT.format(html=html),
            history=history,
            max_tokens=4000,
            temperature=0.7,
        ):
            chunks.append(text)
            yield text

        assistant_message = ChatMessage(
            id=str(uuid.uuid4()),
            role=MessageRole.ASSISTANT,
            content="".join(chunks),
            timestamp=utc_now(),
        )
        self._save_exchange(user_id, html, message, assistant_message, model.name)

    def _save_exchange(self, user_id, html, user_message, assistant_message, provider):
        try:
            for role, content, message_id in (
                (MessageRole.USER, user_message, str(uuid.uuid4())),
                (MessageRole.ASSISTANT, assistant_message.content, assistant_message.id),
            ):
                self.store.insert(
                    CHAT_TABLE,
                    {
                        "id": message_id,
                        "user_id": user_id,
                        "html_code": html,
                        "role": role.value,
                        "content": content,
                        "ai_model": provider,
                        "created_at": utc_now(),
                    },
                )
        except StoreError as exc:
            logger.error("Failed to store chat messages", error=str(exc))

    def execute_command(
        self,
        html: str,
        command: str,
        user_id: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> Dict[str, str]:
        if not html:
            raise MissingParameterError("HTML code is required")
        if command not in COMMAND_INSTRUCTIONS:
            raise UnsupportedCommandError(f"Unsupported command: {command}")

        model = self.model_for(provider)
        logger.info(f"Executing command: {command}", provider=model.name)
        prompt = COMMAND_PROMPT.format(
            command=command, html=html, instructions=COMMAND_INSTRUCTIONS[command]
        )
        result = model.complete(
            prompt,
            system="You are an expert email developer assistant.",
            max_tokens=4000,
            temperature=0.2,
        )
        if command != "validate":
            result = extract_html(result)

        try:
            self.store.insert(
                COMMANDS_TABLE,
                {
                    "user_id": user_id,
                    "html_code": html,
                    "command": command,
                    "result": result,
                    "ai_model": model.name,
                    "created_at": utc_now(),
                },
            )
        except StoreError as exc:
            logger.error("Failed to store command result", error=str(exc))

        return {"result": result, "message": f'Command "{command}" executed successfully'}

    def analyze_and_modify(self, code: str, request: str) -> AssistantReply:
        if not code or not request:
            raise MissingParameterError("Both code and request are required")
        text = self.modify_model.complete(
            MODIFY_PROMPT.format(code=code, request=request), max_tokens=2000, temperature=0.3
        )
        reply = parse_assistant_reply(text)
        logger.info(f"Model proposed {len(reply.modifications)} modifications")
        return reply
