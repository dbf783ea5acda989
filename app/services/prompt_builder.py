"""
Prompt construction for the skin analysis call.

Everything here is a pure function of preferences, retrieved context and the
richness rules, so the same inputs always give the same prompt text.
"""
import re
from typing import List, Optional, Sequence

from app.models.skin_analysis import PRODUCT_CATEGORIES, SEVERITIES, SKIN_TYPES
from app.schemas.skin_analysis import AnalysisPreferences
from app.services.richness_validator import RichnessRules

PROMPT_VERSION = "skin-v3.2"

VALUE_FOCUS_GUIDANCE = {
    "best_value": "proven actives and reliable basics; no premium for packaging or hype",
    "midrange_worth_it": "a bit more spend is fine for clearly better textures or UV filters",
    "splurge_if_unique": "only spend more when a product has a clear unique advantage",
}

JSON_REPAIR_INSTRUCTION = (
    "Your last output was not valid JSON. Return ONLY valid JSON matching the schema exactly. "
    "No markdown. No extra keys."
)

_WHITESPACE = re.compile(r"\s+")


def build_context_section(
    retrieved_context: Optional[Sequence[str]],
    max_entries: int = 6,
    max_chars: int = 180,
) -> str:
    """
    Render retrieved summaries as a clearly labeled weak prior.

    Returns an empty string when there is nothing to add.
    """
    if not retrieved_context:
        return ""

    entries = []
    for raw in list(retrieved_context)[:max_entries]:
        entry = _WHITESPACE.sub(" ", str(raw)).strip()[:max_chars]
        if entry:
            entries.append(entry)

    if not entries:
        return ""

    lines = ["OPTIONAL CONTEXT (weak prior signals only; do NOT quote, do NOT treat as authoritative):"]
    lines.extend(f"- {entry}" for entry in entries)
    return "\n".join(lines)


def _weekly_schema_lines(rules: RichnessRules) -> List[str]:
    if rules.structured_weekly:
        return [
            '      "Daily base (AM): ...",',
            '      "Daily base (PM): ...",',
            '      "Active cycle (Mon–Sun): Mon ... | Tue ... | Wed ... | Thu ... | Fri ... | Sat ... | Sun ...",',
            '      "Ramp-up (4 weeks): Weeks 1–2 ...; Weeks 3–4 ...; Maintenance ...",',
            '      "Rules: ..."',
        ]
    return ['      "..."', '      "..."']


def build_schema_description(rules: RichnessRules) -> str:
    """The exact JSON shape the model must return"""
    schema_parts = [
        "{",
        f'  "skinType": {{ "type": "{" | ".join(SKIN_TYPES)}", "confidence": 0.0 }},',
        f'  "concerns": [{{"name": "...", "severity": "{"|".join(SEVERITIES)}", "confidence": 0.0, "evidence": "..."}}],',
        '  "ingredients": [{"ingredient": "...", "reason": "...", "cautions": ["..."]}],',
        f'  "products": [{{"name": "...", "brand": "...", "category": "{"|".join(PRODUCT_CATEGORIES)}", '
        '"why": "...", "howToUse": "...", "cautions": ["..."], "tags": ["..."]}],',
        '  "routine": {',
        '    "AM": ["..."],',
        '    "PM": ["..."],',
        '    "weekly": [',
    ]
    schema_parts.extend(_weekly_schema_lines(rules))
    schema_parts.extend([
        "    ]",
        "  },",
        '  "conflicts": [{"ingredients": ["...", "..."], "warning": "..."}],',
        '  "disclaimers": ["..."],',
        '  "timestamp": "ISO-8601"',
        "}",
    ])
    return "\n".join(schema_parts)


def _preference_lines(prefs: AnalysisPreferences) -> List[str]:
    lines = ["USER PREFERENCES (must be respected):"]
    lines.append(f'- goals: "{prefs.goals}"')
    lines.append(f"- age: {prefs.age if prefs.age is not None else 'not provided'}")
    if prefs.value_focus:
        lines.append(f"- valueFocus: {prefs.value_focus} ({VALUE_FOCUS_GUIDANCE[prefs.value_focus]})")
    else:
        lines.append("- valueFocus: not provided (default to best_value)")
    lines.append(
        f"- fragranceFree: {str(prefs.fragrance_free).lower()} "
        '(if true, prioritize fragrance-free; if unsure, say "may contain fragrance")'
    )
    lines.append(
        f"- pregnancySafe: {str(prefs.pregnancy_safe).lower()} "
        "(if true, avoid retinoids; choose safer alternatives when uncertain)"
    )
    lines.append(
        f"- sensitiveMode: {str(prefs.sensitive_mode).lower()} "
        "(if true, simplify routine, fewer actives, slower ramp)"
    )
    return lines


def _quality_rules(rules: RichnessRules) -> List[str]:
    am_min = rules.min_am_steps + 1
    pm_min = rules.min_pm_steps + 1
    lines = ["QUALITY RULES (IMPORTANT):"]
    lines.append("1) The routine MUST be tailored to the observed issues. Do NOT output a generic routine.")
    lines.append(f"2) AM routine must have {am_min}–{am_min + 2} steps. PM routine must have {pm_min}–{pm_min + 3} steps.")
    lines.append(
        f"   - If sensitiveMode=true, AM may be {rules.min_am_steps}–{am_min + 1} "
        f"and PM may be {rules.min_pm_steps}–{pm_min + 2}, but still specific."
    )
    lines.append("3) Every routine step MUST include a CATEGORY (cleanser/toner/serum/moisturizer/sunscreen/etc),")
    lines.append('   a FREQUENCY (daily / 2x-week / etc) and a SHORT CONDITION (e.g. "skip if stinging").')

    if rules.structured_weekly:
        lines.append("4) routine.weekly is REQUIRED and must include ALL of these entries (use these exact prefixes):")
        lines.append('   - "Daily base (AM): ..." (one-line base plan used every morning)')
        lines.append('   - "Daily base (PM): ..." (one-line base plan used every night around actives)')
        lines.append('   - "Active cycle (Mon–Sun): Mon ... | Tue ... | ... | Sun ..."')
        lines.append("     * Label each day as a Treatment night (which active) or a Barrier night (recovery).")
        lines.append("     * If pregnancySafe=true, do NOT include retinoids in the cycle.")
        lines.append("     * If sensitiveMode=true, start with 1–2 treatment nights per week.")
        lines.append('   - "Ramp-up (4 weeks): Weeks 1–2 ...; Weeks 3–4 ...; Maintenance ..."')
        lines.append('   - "Rules: ..." (when to pause, patch testing, irritation guidance)')
    else:
        lines.append(
            f"4) routine.weekly is REQUIRED with at least {rules.min_weekly_entries} entries "
            "(weekly treatments, masks, exfoliation days and when to skip them)."
        )

    lines.append(f"5) Products: recommend by SLOT and cover at least {rules.min_products} slots:")
    lines.append("   - Cleanser (gentle) 1–2 options")
    lines.append("   - Moisturizer 1–2 options (a lighter gel if oily/acne-prone)")
    lines.append("   - Sunscreen 1–2 options")
    lines.append("   - Targeted treatment/serum aligned to the top concern 1–2 options")
    lines.append("   Optional: spot treatment / mask")
    lines.append("6) Do not invent brands. Prefer widely available K-beauty brands; if uncertain, choose safe mainstream options.")
    lines.append('7) Conflicts must include concrete "do not combine same night" warnings for the ingredients you recommended.')
    return lines


def build_analysis_prompt(
    preferences: AnalysisPreferences,
    retrieved_context: Optional[Sequence[str]],
    rules: RichnessRules,
    max_context_entries: int = 6,
    max_context_chars: int = 180,
) -> str:
    """
    Build the full instruction text sent with the photo on every attempt
    """
    prompt_parts = []

    prompt_parts.append("You are a cautious skincare assistant specializing in Korean skincare routines.")

    prompt_parts.append("\nROLE + STYLE:")
    prompt_parts.append("- Be practical and specific (step order, frequency, amount, when to stop).")
    prompt_parts.append("- Avoid moralizing or attractiveness comments.")
    prompt_parts.append("- Do NOT diagnose diseases.")
    prompt_parts.append("- If the photo is unclear, say so and reduce confidence, but still provide a safe minimal routine.")

    prompt_parts.append("")
    prompt_parts.extend(_preference_lines(preferences))

    context = build_context_section(retrieved_context, max_context_entries, max_context_chars)
    if context:
        prompt_parts.append("")
        prompt_parts.append(context)

    prompt_parts.append("\nTASK:")
    prompt_parts.append(
        "Analyze ONLY visible facial skin characteristics and produce a structured JSON report "
        "matching the exact schema below."
    )
    prompt_parts.append("Output MUST be VALID JSON ONLY. No markdown. No commentary.")

    prompt_parts.append("")
    prompt_parts.extend(_quality_rules(rules))

    prompt_parts.append("\nEVIDENCE RULE:")
    prompt_parts.append(
        "For each concern, include specific visible evidence from the photo "
        '(e.g. "clustered red papules on cheeks", "shine in T-zone").'
    )
    prompt_parts.append("If lighting or angle obstructs the view, state that.")
    prompt_parts.append("Confidence values are numbers between 0 and 1.")

    prompt_parts.append("\nReturn JSON ONLY matching this exact shape:\n")
    prompt_parts.append(build_schema_description(rules))

    prompt_parts.append("\nFINAL CHECK BEFORE YOU ANSWER:")
    prompt_parts.append("- Valid JSON only")
    prompt_parts.append(f"- AM has at least {rules.min_am_steps} steps and PM at least {rules.min_pm_steps}")
    if rules.structured_weekly:
        prompt_parts.append("- routine.weekly includes Daily base + Active cycle + Ramp-up + Rules")
    else:
        prompt_parts.append(f"- routine.weekly has at least {rules.min_weekly_entries} entries")
    prompt_parts.append(f"- at least {rules.min_products} product slots covered")

    return "\n".join(prompt_parts)


def build_richness_repair_instruction(reasons: Sequence[str], rules: RichnessRules) -> str:
    """
    Corrective follow-up naming each failed rule.
    """
    failed = "; ".join(reasons) if reasons else "output too generic"
    instruction = (
        f"Your last output was too generic/short ({failed}). "
        "Expand with specific step frequencies and conditions, recommend products by slot, "
        "and return valid JSON only."
    )
    if rules.structured_weekly:
        instruction += (
            " Make sure routine.weekly includes: Daily base (AM), Daily base (PM), "
            "Active cycle (Mon–Sun) with treatment vs barrier nights, Ramp-up (4 weeks), and Rules."
        )
    return instruction
