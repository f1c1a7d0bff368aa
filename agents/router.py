"""Topic router: picks the chat agent that answers a question."""

import json
import logging
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from llm.base_client import BaseLLMClient, Message, Role

logger = logging.getLogger(__name__)


class Intent(BaseModel):
    """Structured output of the topic detection call."""
    topic_discussion: str = ""


class RoutingRule(BaseModel):
    topics: List[str]
    agent: str


class RoutingConfig(BaseModel):
    """Maps detected topics to agent names, with a fallback agent."""
    routing: List[RoutingRule] = Field(default_factory=list)
    default_agent: str = "generic"

    def agent_for_topic(self, topic: str) -> str:
        """Agent name for a topic; matching ignores case."""
        topic_lower = topic.strip().lower()
        for rule in self.routing:
            if any(candidate.lower() == topic_lower for candidate in rule.topics):
                return rule.agent
        return self.default_agent


DEFAULT_ROUTING = RoutingConfig(
    routing=[
        RoutingRule(
            topics=["coding", "programming", "development", "code", "software",
                    "debugging", "technology", "software development"],
            agent="coder"
        ),
        RoutingRule(
            topics=["philosophy", "thinking", "ideas", "thoughts", "psychology",
                    "relationships", "math", "mathematics", "science"],
            agent="thinker"
        ),
    ],
    default_agent="generic"
)


class ChatAgentProfile:
    """A chat agent the router can pick: a client and its system instructions."""

    def __init__(
        self,
        name: str,
        client: Optional[BaseLLMClient] = None,
        system_instructions: str = ""
    ):
        self.name = name
        self.client = client
        self.system_instructions = system_instructions

    def __repr__(self) -> str:
        return f"ChatAgentProfile(name={self.name!r})"


CODER_INSTRUCTIONS = """You are an expert programming assistant. You write clean, efficient, and well-documented code. Always:
- Provide complete, working code
- Include error handling
- Add helpful comments
- Follow best practices for the language
- Explain your approach briefly"""

THINKER_INSTRUCTIONS = """You are a thoughtful conversational assistant.
- Listen carefully to the user
- Think before responding
- Ask clarifying questions when needed
- Discuss topics with curiosity and respect
- Admit when you don't know something
Keep responses natural and conversational."""

GENERIC_INSTRUCTIONS = """You respond appropriately to different types of questions.
For factual questions: Give direct answers with key facts
For how-to questions: Provide step-by-step guidance
For opinion questions: Present balanced perspectives
For complex topics: Break into digestible parts

Always start with the most important information."""


class TopicRouter:
    """
    LLM-based router.

    Asks a small model for the topic of the question as JSON, then maps the
    topic to one of the registered chat agents through a RoutingConfig.
    """

    SYSTEM_PROMPT = """You are good at identifying the topic of a conversation.
Given a user's input, identify the main topic of discussion in only one word.
The possible topics are: Technology, Health, Sports, Entertainment, Politics, Science, Mathematics,
Travel, Food, Education, Finance, Environment, Fashion, History, Literature, Art,
Music, Psychology, Relationships, Philosophy, Religion, Automotive, Gaming, Translation.

Respond with valid JSON only:
{"topic_discussion": "<topic>"}"""

    def __init__(
        self,
        llm_client: BaseLLMClient,
        agents: Dict[str, ChatAgentProfile],
        config: RoutingConfig = DEFAULT_ROUTING,
        system_prompt: Optional[str] = None
    ):
        """
        Initialize router.

        Args:
            llm_client: LLM client for topic detection
            agents: Chat agents by name; must include config.default_agent
            config: Topic to agent mapping
            system_prompt: Instructions of the topic detection call
        """
        if config.default_agent not in agents:
            raise ValueError(f"Default agent '{config.default_agent}' is not registered")

        self.llm_client = llm_client
        self.agents = agents
        self.config = config
        self.system_prompt = system_prompt or self.SYSTEM_PROMPT

    def detect_topic(self, question: str) -> str:
        """
        Topic of the question, or "" when the answer is not usable JSON.

        Provider errors propagate.
        """
        messages = [
            Message(role=Role.SYSTEM.value, content=self.system_prompt),
            Message(role=Role.USER.value, content=question)
        ]
        response = self.llm_client.chat(messages=messages, temperature=0.0)

        content = response.content.strip()

        # Handle potential markdown code blocks
        if content.startswith("```"):
            content = content.split("```")[1]
            if content.startswith("json"):
                content = content[4:]
            content = content.strip()

        try:
            intent = Intent(**json.loads(content))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Unusable topic detection answer {response.content!r}: {e}")
            return ""

        return intent.topic_discussion

    def route(self, question: str) -> ChatAgentProfile:
        """Pick the chat agent for the question."""
        topic = self.detect_topic(question)
        name = self.config.agent_for_topic(topic) if topic else self.config.default_agent
        profile = self.agents.get(name)
        if profile is None:
            logger.warning(f"Topic '{topic}' routes to unknown agent '{name}', using default")
            profile = self.agents[self.config.default_agent]

        logger.info(f"Topic detected: {topic or 'unknown'} -> {profile.name}")
        return profile
