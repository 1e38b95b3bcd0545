import pytest

import analysis_modules
from analysis_modules import GENERAL, ModuleConfig, resolve_module
from config import GrowthConfig
from models import AnalysisType
from stage_runner import request_stage_json
from test_pipeline import _agent, _responses
from text_generation import TextGenerator


class RecordingGenerator(TextGenerator):
    provider_name = "recording"

    def __init__(self):
        self.options = []

    def generate(self, messages, options):
        self.options.append(options)
        return '{"ok": true}'


def test_general_leaves_prompts_untouched():
    module = resolve_module("general")
    assert module is GENERAL
    assert not module.is_specialized
    assert module.collector_block() == module.analyst_block() == module.strategist_block() == ""
    assert module.critic_block() == ""


@pytest.mark.parametrize("value", ["campaigns", "tracking", "desconhecido", None])
def test_unavailable_or_unknown_types_fall_back_to_general(value):
    assert resolve_module(value) is GENERAL


def test_specialized_modes_carry_every_stage_block():
    for kind in (AnalysisType.FINANCIAL, AnalysisType.CONVERSION, AnalysisType.COMPETITORS):
        module = resolve_module(kind)
        assert module.is_specialized
        assert f"FOCO ESPECIALIZADO: {kind.value}" in module.collector_block()
        assert f"FOCO ESPECIALIZADO: {kind.value}" in module.analyst_block()
        assert module.strategist_focus in module.strategist_block()
        assert "RUIM (evitar)" in module.strategist_block()
        assert module.critic_criteria in module.critic_block()


def test_financial_mode_lists_required_metrics():
    block = resolve_module(AnalysisType.FINANCIAL).collector_block()
    assert "faturamento_mensal, ticket_medio, margem, custo_aquisicao, ltv" in block


def test_type_listing_marks_availability():
    listing = {item["key"]: item for item in analysis_modules.describe_types()}
    assert listing["general"]["is_default"]
    assert listing["financial"]["label"] == "Análise Financeira"
    assert not listing["campaigns"]["available"]
    assert AnalysisType.TRACKING not in analysis_modules.available_types()


def test_temperature_override_reaches_the_backend():
    module = ModuleConfig(analysis_type=AnalysisType.FINANCIAL, temperature_override=0.05)
    generator = RecordingGenerator()
    request_stage_json(
        generator, "strategist", "sistema", "usuário", lambda payload: [],
        check_language=False, temperature=module.temperature_override,
    )
    request_stage_json(generator, "strategist", "sistema", "usuário", lambda payload: [], check_language=False)
    assert generator.options[0].temperature == 0.05
    assert generator.options[1].temperature == GrowthConfig.temperature("strategist")


def test_requested_mode_is_injected_into_stage_prompts(stub_generator, request_factory):
    generator = stub_generator(_responses())
    result = _agent(generator).generate_analysis(request_factory(analysis_type="conversion"))

    prompts = dict(generator.calls)
    assert "FOCO ESPECIALIZADO: conversion" in prompts["collector"]
    assert "abandono de carrinho" in prompts["analyst"]
    assert "otimização de conversão" in prompts["strategist"]
    assert result.analysis_type == AnalysisType.CONVERSION


def test_general_request_prompts_have_no_focus_block(stub_generator, request_factory):
    generator = stub_generator(_responses())
    _agent(generator).generate_analysis(request_factory())
    assert all("FOCO ESPECIALIZADO" not in prompt for _, prompt in generator.calls)
