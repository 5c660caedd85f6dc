"""AI advisor: prompts, model cascade, advice operations and chat."""

from opportunity_iq.advisor.chat import ChatMessage, SpecialistChat
from opportunity_iq.advisor.parsing import (
    MalformedResponseError,
    extract_json,
    parse_list,
    parse_model,
)
from opportunity_iq.advisor.prompts import PromptCatalog, PromptTemplate, load_prompts
from opportunity_iq.advisor.runner import ModelCascadeRunner
from opportunity_iq.advisor.service import AdvisorService, AdvisorUnavailableError

__all__ = [
    "AdvisorService",
    "AdvisorUnavailableError",
    "ChatMessage",
    "MalformedResponseError",
    "ModelCascadeRunner",
    "PromptCatalog",
    "PromptTemplate",
    "SpecialistChat",
    "extract_json",
    "load_prompts",
    "parse_list",
    "parse_model",
]
