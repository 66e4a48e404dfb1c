"""External service adapters.

This package provides the capability protocols the core depends on and
their concrete implementations:
- MailProvider / TaskTracker / LanguageModel protocols
- Gmail REST adapter
- Todoist REST adapter
- Anthropic language-model adapter
"""

from todo_agent.providers.anthropic_llm import AnthropicLanguageModel
from todo_agent.providers.base import LanguageModel, MailProvider, TaskTracker
from todo_agent.providers.gmail import GmailProvider
from todo_agent.providers.todoist import TodoistTracker

__all__ = [
    "AnthropicLanguageModel",
    "GmailProvider",
    "LanguageModel",
    "MailProvider",
    "TaskTracker",
    "TodoistTracker",
]
