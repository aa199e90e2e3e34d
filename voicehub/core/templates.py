"""Predefined conversation presets."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ConversationTemplate:
    id: str
    name: str
    description: str
    llm_provider: str
    llm_model: str
    temperature: int  # stored form, x100
    system_prompt: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


CONVERSATION_TEMPLATES: List[ConversationTemplate] = [
    ConversationTemplate(
        id="creative-writing",
        name="Creative Writing",
        description="Imaginative storytelling and creative content generation",
        llm_provider="openai",
        llm_model="gpt-4",
        temperature=90,
        system_prompt=(
            "You are a creative writing assistant. Help users craft compelling stories, develop characters, "
            "and explore imaginative narratives. Be expressive, vivid, and encourage creativity."
        ),
    ),
    ConversationTemplate(
        id="code-assistant",
        name="Code Assistant",
        description="Programming help, debugging, and technical guidance",
        llm_provider="openai",
        llm_model="gpt-4",
        temperature=30,
        system_prompt=(
            "You are an expert programming assistant. Provide clear, accurate code examples, explain "
            "technical concepts, help debug issues, and follow best practices. Be precise and thorough."
        ),
    ),
    ConversationTemplate(
        id="business-advisor",
        name="Business Advisor",
        description="Strategic planning, analysis, and professional insights",
        llm_provider="openai",
        llm_model="gpt-4",
        temperature=50,
        system_prompt=(
            "You are a business strategy consultant. Provide professional advice on business planning, "
            "market analysis, and strategic decisions. Be analytical, data-driven, and practical."
        ),
    ),
    ConversationTemplate(
        id="tutor",
        name="Personal Tutor",
        description="Educational support and learning assistance",
        llm_provider="openai",
        llm_model="gpt-4",
        temperature=40,
        system_prompt=(
            "You are a patient and knowledgeable tutor. Explain concepts clearly, break down complex topics, "
            "provide examples, and encourage learning. Adapt your teaching style to the student's needs."
        ),
    ),
    ConversationTemplate(
        id="brainstorm",
        name="Brainstorm Partner",
        description="Idea generation and creative problem-solving",
        llm_provider="openai",
        llm_model="gpt-4",
        temperature=85,
        system_prompt=(
            "You are a creative brainstorming partner. Generate diverse ideas, explore unconventional "
            "solutions, ask thought-provoking questions, and help users think outside the box."
        ),
    ),
    ConversationTemplate(
        id="quick-answers",
        name="Quick Answers",
        description="Fast, concise responses to direct questions",
        llm_provider="openai",
        llm_model="gpt-3.5-turbo",
        temperature=20,
        system_prompt=(
            "You are a concise assistant. Provide quick, accurate answers to questions. Be brief and to "
            "the point while remaining helpful and informative."
        ),
    ),
]

_TEMPLATES_BY_ID: Dict[str, ConversationTemplate] = {t.id: t for t in CONVERSATION_TEMPLATES}


def get_template(template_id: str) -> Optional[ConversationTemplate]:
    return _TEMPLATES_BY_ID.get(template_id)
