"""Grounded chat replies streamed from the LLM with trailing citations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING

from openai import OpenAI

from .config import config
from .location import normalize_insurance_type, parse_location
from .models import ConversationContext, ConversationMessage, QueryOptions, RAGResponse
from .ranking import select_sources

if TYPE_CHECKING:
    from .models import CustomerProfile, Source
    from .pipeline import QueryPipeline

logger = config.get_logger(__name__)

VALID_ROLES = {"user", "assistant", "system"}

BASE_PROMPT = """You are a knowledgeable, friendly and professional insurance \
assistant helping users understand and obtain insurance coverage.
{profile_block}
Your role is to:
1. Help users understand their insurance needs
2. Educate them about coverage options
3. Gather necessary information for accurate quotes
4. Provide personalized recommendations based on their situation
5. Prepare them for conversations with insurance carriers"""

GROUNDING_PROMPT = """

IMPORTANT - Use the following verified insurance information to answer the \
user's question accurately:

{context}

When using this information:
- Provide specific, accurate answers based on the context
- Cite sources when mentioning regulations or requirements
- If the context doesn't fully answer the question, acknowledge this and \
provide general guidance
- Always prioritize accuracy over assumptions"""


def build_conversation_context(
    messages: Iterable[Mapping[str, str]],
    profile: CustomerProfile | None = None,
) -> ConversationContext:
    """Convert raw chat messages and a customer profile into a context.

    Messages with an unknown role or empty content are skipped. The state is
    taken from the profile location only when it parses cleanly.

    Returns:
        ConversationContext ready for the query pipeline.
    """
    context = ConversationContext()
    for message in messages:
        role = str(message.get("role", "")).lower()
        content = str(message.get("content") or "")
        if role in VALID_ROLES and content.strip():
            context.messages.append(ConversationMessage(role=role, content=content))  # type: ignore[arg-type]

    if profile is not None:
        context.insurance_type = normalize_insurance_type(profile.insurance_type)
        location = parse_location(profile.location)
        context.state = location.state if location else None

    return context


def build_system_prompt(
    profile: CustomerProfile | None,
    rag_context: str | None,
) -> str:
    """Build the system prompt, adding grounding instructions when available.

    Returns:
        System prompt text.
    """
    profile_block = ""
    if profile is not None:
        profile_block = (
            "\nCustomer Profile:\n"
            f"- Age: {profile.age or 'Not specified'}\n"
            f"- Location: {profile.location or 'Not specified'}\n"
            f"- Insurance Type: {profile.insurance_type or 'Not specified'}\n"
        )

    prompt = BASE_PROMPT.format(profile_block=profile_block)
    if rag_context is not None:
        prompt += GROUNDING_PROMPT.format(context=rag_context)
    return prompt


def format_source_citations(sources: Iterable[Source]) -> str:
    """Render a numbered citation block for display after the answer.

    Sources go through the same floor, ordering and cap as the query
    pipeline, so passing already-selected sources changes nothing.

    Returns:
        Citation text, or an empty string when nothing qualifies.
    """
    relevant = select_sources(sources)
    if not relevant:
        return ""

    lines = [
        f"{i}. {source.title} ({source.type})"
        for i, source in enumerate(relevant, start=1)
    ]
    return "\n\n---\n*Sources consulted:*\n" + "\n".join(lines) + "\n"


class ChatService:
    """Streams LLM answers grounded by the query pipeline."""

    def __init__(
        self,
        query_pipeline: QueryPipeline,
        openai_api_key: str | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize ChatService.

        Args:
            query_pipeline: Shared retrieval pipeline.
            openai_api_key: OpenAI API key. Ignored when ``client`` is given.
            client: Pre-built OpenAI client to reuse.
        """
        self.query_pipeline = query_pipeline
        if client is None:
            default_headers = config.get_api_headers()
            client = OpenAI(
                api_key=openai_api_key or config.get_openai_api_key(),
                base_url=config.OPENAI_BASE_URL,
                default_headers=default_headers or None,
                timeout=config.CHAT_TIMEOUT,
            )
        self.client = client

    def retrieve_grounding(self, context: ConversationContext) -> RAGResponse:
        """Query the pipeline for the latest user message.

        Returns:
            Pipeline response; empty when retrieval is disabled or there is no
            user question.
        """
        question = context.last_user_message()
        if not config.ENABLE_RAG or not question:
            return RAGResponse.empty()

        response = self.query_pipeline.query(
            question,
            context,
            QueryOptions(
                top_k=config.RAG_TOP_K,
                insurance_type=context.insurance_type,
                state=context.state,
            ),
        )
        logger.info("Found %d relevant sources", len(response.sources))
        return response

    @staticmethod
    def _completion_messages(
        system_prompt: str,
        context: ConversationContext,
    ) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            *(
                {"role": message.role, "content": message.content}
                for message in context.messages
                if message.role != "system"
            ),
        ]

    def stream_reply(
        self,
        context: ConversationContext,
        profile: CustomerProfile | None = None,
    ) -> Iterator[str]:
        """Stream the assistant's reply, then the citation block once.

        Closing the returned generator early closes the upstream completion
        stream as well.

        Yields:
            Model text fragments in order, followed by at most one citation
            chunk.
        """
        grounding = self.retrieve_grounding(context)
        system_prompt = build_system_prompt(profile, grounding.context)

        stream = self.client.chat.completions.create(
            model=config.CHAT_MODEL,
            messages=self._completion_messages(system_prompt, context),  # type: ignore[arg-type]
            max_tokens=config.CHAT_MAX_TOKENS,
            temperature=config.CHAT_TEMPERATURE,
            stream=True,
        )

        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                text = chunk.choices[0].delta.content
                if text:
                    yield text
        finally:
            stream.close()

        citations = format_source_citations(grounding.sources)
        if citations:
            yield citations
