"""Prompt construction from persona data and the YAML templates."""

import json
from dataclasses import asdict

from config.config_loader import LanguageConfig, PromptsConfig, RoleProfile
from discovery.models import Persona, ThinkContext, Theory

_NONE_YET = "None yet"


def language_for(prompts: PromptsConfig, language: str) -> LanguageConfig:
    return prompts.languages.get(language) or prompts.languages["en"]


def role_profile(prompts: PromptsConfig, persona: Persona) -> RoleProfile:
    return prompts.roles[persona.role]


def render_context(context: ThinkContext) -> str:
    data = {k: v for k, v in asdict(context).items() if v not in (None, [], "")}
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def build_system_prompt(persona: Persona, prompts: PromptsConfig, language: str, knowledge: str = "") -> str:
    lang = language_for(prompts, language)
    profile = role_profile(prompts, persona)
    directive = profile.directive.format(protocol="\n".join(persona.protocol)) if profile.directive else ""
    return prompts.system.format(
        language_instruction=lang.instruction,
        name=persona.name,
        era=persona.era or "unknown era",
        personality=persona.personality,
        description=persona.description or persona.personality,
        approach=persona.approach,
        expertise=", ".join(persona.expertise),
        style=persona.style or "Your own",
        biases="; ".join(persona.biases) or "None declared",
        quirks=persona.quirks or "None",
        quote=persona.quote,
        role_directive=directive.strip(),
        mission=profile.mission,
        knowledge=knowledge or "None loaded",
        response_format=lang.response_format,
    )


def build_think_prompt(
    persona: Persona,
    prompts: PromptsConfig,
    context: ThinkContext,
    interactions: list[str],
    hypotheses: list[str],
    language: str,
) -> str:
    lang = language_for(prompts, language)
    profile = role_profile(prompts, persona)
    return prompts.think.format(
        language_instruction=lang.instruction,
        context=render_context(context),
        interactions="\n".join(interactions) or _NONE_YET,
        hypotheses="\n".join(hypotheses) or _NONE_YET,
        think_question=profile.think_question,
        agreement_range=profile.agreement_range,
        response_format=lang.response_format,
    )


def build_respond_prompt(
    persona: Persona,
    prompts: PromptsConfig,
    message: str,
    from_agent: str,
    language: str,
) -> str:
    lang = language_for(prompts, language)
    profile = role_profile(prompts, persona)
    return prompts.respond.format(
        language_instruction=lang.instruction,
        from_agent=from_agent,
        message=message,
        respond_reminder=profile.respond_reminder.strip(),
        response_format=lang.response_format,
    )


def build_challenge_message(theory: Theory, prompts: PromptsConfig) -> str:
    return prompts.challenge.format(
        proposed_by=theory.proposed_by_name,
        name=theory.name,
        description=theory.description,
        mathematics=theory.mathematics or "Not specified",
        predictions=json.dumps(theory.predictions, ensure_ascii=False),
        tests=json.dumps(theory.tests, ensure_ascii=False),
    )
