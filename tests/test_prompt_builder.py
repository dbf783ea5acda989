from app.schemas.skin_analysis import AnalysisPreferences
from app.services.prompt_builder import (
    JSON_REPAIR_INSTRUCTION,
    build_analysis_prompt,
    build_context_section,
    build_richness_repair_instruction,
)

WEAK_PRIOR_HEADING = "OPTIONAL CONTEXT (weak prior signals only; do NOT quote, do NOT treat as authoritative):"


def test_context_section_empty():
    assert build_context_section([]) == ""
    assert build_context_section(None) == ""
    assert build_context_section(["   ", "\n"]) == ""


def test_context_section_keeps_at_most_six_entries():
    section = build_context_section([f"summary {i}" for i in range(10)])
    lines = section.splitlines()

    assert lines[0] == WEAK_PRIOR_HEADING
    assert len(lines) == 7
    assert lines[-1] == "- summary 5"


def test_context_entries_collapsed_and_truncated():
    section = build_context_section(["  SkinType:\n\tOily.   Concerns:  acne  ", "x" * 500])
    lines = section.splitlines()

    assert lines[1] == "- SkinType: Oily. Concerns: acne"
    assert lines[2] == "- " + "x" * 180


def test_prompt_is_deterministic(minimal_rules):
    prefs = AnalysisPreferences(goals="clear acne", age=29, value_focus="best_value")
    first = build_analysis_prompt(prefs, ["SkinType: Oily"], minimal_rules)
    second = build_analysis_prompt(prefs, ["SkinType: Oily"], minimal_rules)
    assert first == second


def test_prompt_contains_preferences(minimal_rules):
    prefs = AnalysisPreferences(goals="fade marks", age=41, value_focus="splurge_if_unique", pregnancy_safe=True)
    prompt = build_analysis_prompt(prefs, [], minimal_rules)

    assert '- goals: "fade marks"' in prompt
    assert "- age: 41" in prompt
    assert "- valueFocus: splurge_if_unique" in prompt
    assert "- pregnancySafe: true" in prompt
    assert "OPTIONAL CONTEXT" not in prompt


def test_prompt_labels_context_as_weak_prior(minimal_rules):
    prompt = build_analysis_prompt(AnalysisPreferences(), ["SkinType: Dry. Concerns: flaking(Mild)"], minimal_rules)

    assert WEAK_PRIOR_HEADING in prompt
    assert "- SkinType: Dry. Concerns: flaking(Mild)" in prompt


def test_structured_prompt_names_weekly_sections(structured_rules, minimal_rules):
    structured = build_analysis_prompt(AnalysisPreferences(), [], structured_rules)
    minimal = build_analysis_prompt(AnalysisPreferences(), [], minimal_rules)

    assert "Active cycle (Mon–Sun)" in structured
    assert "Active cycle (Mon–Sun)" not in minimal
    assert "routine.weekly has at least 2 entries" in minimal


def test_richness_repair_names_failed_rules(minimal_rules):
    reasons = ("AM routine too short (3 steps, need at least 4)", "Not enough product slots covered (2, need at least 4)")
    instruction = build_richness_repair_instruction(reasons, minimal_rules)

    assert instruction.startswith(
        "Your last output was too generic/short (AM routine too short (3 steps, need at least 4); "
        "Not enough product slots covered"
    )
    assert "return valid JSON only" in instruction


def test_json_repair_instruction():
    assert "Return ONLY valid JSON" in JSON_REPAIR_INSTRUCTION
