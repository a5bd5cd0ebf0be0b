"""Workshop LLM agents."""
from workshop.agents.base_agent import AgentContext, BaseAgent
from workshop.agents.reflection_agent import LLMReflectionPromptGenerator, ReflectionPromptAgent
