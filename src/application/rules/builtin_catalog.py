"""Built-in prescription safety rules.

Default catalog used when no catalog file is configured. Covers the allergen
family, interaction, condition, age, pregnancy and organ-function tables the
consultation screens have shipped with.
"""

import logging
from typing import List

from domain.prescription_safety_models import (
    AgeRule,
    AllergyRule,
    ConditionRule,
    InteractionRule,
    Organ,
    OrganImpairmentRule,
    PregnancyRule,
    Rule,
    Severity,
)

from .rule_catalog import RuleCatalog

logger = logging.getLogger(__name__)

BUILTIN_CATALOG_VERSION = "builtin-2026.10"


def condition_recommendation(severity: Severity, condition: str) -> str:
    """Default recommendation text for a condition finding."""
    recommendations = {
        Severity.ABSOLUTE: f"Absolutely contraindicated with {condition}. Select alternative medication.",
        Severity.RELATIVE: (
            f"Use with extreme caution in {condition}. "
            f"Consider alternatives or specialist consultation."
        ),
        Severity.WARNING: f"Monitor closely for complications related to {condition}.",
        Severity.CAUTION: f"Consider dose adjustment or increased monitoring due to {condition}.",
    }
    return recommendations.get(severity, "Review patient condition and medication appropriateness.")


def interaction_recommendation(severity: Severity) -> str:
    """Default recommendation text for an interaction finding."""
    recommendations = {
        Severity.ABSOLUTE: "Do not prescribe these medications together.",
        Severity.RELATIVE: "Consider alternative medications or specialist consultation.",
        Severity.WARNING: "Monitor closely for adverse effects.",
        Severity.CAUTION: "Consider dose adjustment or increased monitoring.",
    }
    return recommendations.get(severity, "Review drug interaction and consider alternatives.")


def _allergy_rules() -> List[Rule]:
    penicillins = ("amoxicillin", "ampicillin", "penicillin")
    return [
        # Penicillin family
        AllergyRule("AL001", "penicillin", penicillins, "Penicillin-class antibiotic"),
        AllergyRule("AL002", "beta-lactam", penicillins, "Beta-lactam antibiotic"),

        # Sulfa drugs
        AllergyRule("AL003", "sulfa", ("sulfamethoxazole",), "Sulfonamide antibiotic"),

        # NSAIDs
        AllergyRule("AL004", "nsaid", ("ibuprofen", "aspirin", "naproxen"), "Non-steroidal anti-inflammatory"),
        AllergyRule("AL005", "salicylate", ("aspirin",), "Salicylate"),

        # Opioids
        AllergyRule("AL006", "opioid", ("codeine", "morphine"), "Opioid analgesic"),
    ]


def _interaction_rules() -> List[Rule]:
    return [
        # Anticoagulants
        InteractionRule("DI001", "warfarin", "aspirin", Severity.RELATIVE, "Increased bleeding risk"),
        InteractionRule("DI002", "warfarin", "nsaid", Severity.RELATIVE, "Increased bleeding risk"),
        InteractionRule("DI003", "warfarin", "antibiotic", Severity.CAUTION, "May alter warfarin metabolism"),

        # Metformin
        InteractionRule("DI004", "metformin", "contrast dye", Severity.RELATIVE, "Risk of lactic acidosis"),
        InteractionRule("DI005", "metformin", "diuretic", Severity.CAUTION, "Monitor for dehydration"),

        # ACE inhibitors
        InteractionRule("DI006", "ace inhibitor", "potassium supplement", Severity.CAUTION, "Risk of hyperkalemia"),
        InteractionRule("DI007", "ace inhibitor", "nsaid", Severity.CAUTION, "Reduced antihypertensive effect"),

        # Digoxin
        InteractionRule("DI008", "digoxin", "diuretic", Severity.CAUTION, "Risk of digoxin toxicity"),
        InteractionRule("DI009", "digoxin", "calcium channel blocker", Severity.CAUTION, "Increased digoxin levels"),

        # Men's health / weight management
        InteractionRule(
            "DI010", "sildenafil", "semaglutide", Severity.WARNING,
            "Monitor for hypotension when combining Sildenafil with Semaglutide.",
            action="Monitor blood pressure closely",
        ),
        InteractionRule(
            "DI011", "tadalafil", "semaglutide", Severity.WARNING,
            "Monitor for hypotension when combining Tadalafil with Semaglutide.",
            action="Monitor blood pressure closely",
        ),
        InteractionRule(
            "DI012", "metformin", "semaglutide", Severity.CAUTION,
            "Enhanced glucose-lowering effect when combining Metformin with Semaglutide.",
            action="Monitor blood glucose levels",
        ),
        InteractionRule(
            "DI013", "sildenafil", "tadalafil", Severity.RELATIVE,
            "Do not combine PDE5 inhibitors (Sildenafil and Tadalafil).",
            action="Choose one PDE5 inhibitor only",
        ),
    ]


def _condition_rules() -> List[Rule]:
    table = [
        ("heart failure", "metformin", Severity.RELATIVE, "Risk of lactic acidosis in heart failure"),
        ("heart failure", "nsaid", Severity.RELATIVE, "NSAIDs can worsen heart failure"),
        ("heart failure", "calcium channel blocker", Severity.CAUTION, "Monitor cardiac function closely"),
        ("kidney disease", "metformin", Severity.ABSOLUTE, "Risk of lactic acidosis with renal impairment"),
        ("kidney disease", "nsaid", Severity.RELATIVE, "NSAIDs can worsen kidney function"),
        ("kidney disease", "ace inhibitor", Severity.CAUTION, "Monitor renal function and potassium"),
        ("liver disease", "acetaminophen", Severity.RELATIVE, "Risk of hepatotoxicity"),
        ("liver disease", "statin", Severity.CAUTION, "Monitor liver enzymes"),
        ("liver disease", "warfarin", Severity.CAUTION, "Altered metabolism in liver disease"),
        ("asthma", "beta blocker", Severity.ABSOLUTE, "Beta blockers can trigger bronchospasm"),
        ("asthma", "aspirin", Severity.RELATIVE, "Risk of aspirin-induced asthma"),
        ("peptic ulcer", "nsaid", Severity.ABSOLUTE, "NSAIDs increase risk of GI bleeding"),
        ("peptic ulcer", "aspirin", Severity.RELATIVE, "Increased bleeding risk"),
        ("peptic ulcer", "corticosteroid", Severity.RELATIVE, "Increased ulcer risk"),
        ("depression", "beta blocker", Severity.CAUTION, "May worsen depression symptoms"),
        ("depression", "corticosteroid", Severity.CAUTION, "Can trigger mood changes"),
        ("pregnancy", "ace inhibitor", Severity.ABSOLUTE, "Teratogenic - contraindicated in pregnancy"),
        ("pregnancy", "warfarin", Severity.ABSOLUTE, "Teratogenic effects"),
        ("pregnancy", "metformin", Severity.CAUTION, "Use only if clearly needed"),
    ]
    return [
        ConditionRule(
            rule_id=f"CI{index:03d}",
            condition=condition,
            medication_pattern=pattern,
            severity=severity,
            message=message,
            recommendation=condition_recommendation(severity, condition),
        )
        for index, (condition, pattern, severity, message) in enumerate(table, start=1)
    ]


def _age_rules() -> List[Rule]:
    return [
        # Pediatric
        AgeRule("AGE001", "aspirin", Severity.ABSOLUTE, "Risk of Reye syndrome in children", min_age=18),
        AgeRule("AGE002", "tetracycline", Severity.ABSOLUTE, "Tooth discoloration in children", min_age=18),
        AgeRule("AGE003", "fluoroquinolone", Severity.RELATIVE, "Risk of tendon problems in children", min_age=18),

        # Geriatric
        AgeRule(
            "AGE004", "benzodiazepine", Severity.CAUTION,
            "Increased fall risk and cognitive impairment in elderly", max_age=64,
        ),
        AgeRule("AGE005", "anticholinergic", Severity.CAUTION, "Increased risk of confusion and falls", max_age=64),
        AgeRule("AGE006", "nsaid", Severity.CAUTION, "Increased GI and cardiovascular risks in elderly", max_age=64),
    ]


def _pregnancy_rules() -> List[Rule]:
    return [
        PregnancyRule("PG001", "ace inhibitor", Severity.ABSOLUTE, "Fetal renal toxicity", category="D"),
        PregnancyRule("PG002", "warfarin", Severity.ABSOLUTE, "Teratogenic effects", category="X"),
        PregnancyRule("PG003", "tetracycline", Severity.ABSOLUTE, "Tooth and bone development issues", category="D"),
        PregnancyRule("PG004", "nsaid", Severity.RELATIVE, "Risk in third trimester", category="C/D"),
        PregnancyRule("PG005", "metformin", Severity.CAUTION, "Limited data in pregnancy", category="B"),
    ]


def _organ_rules() -> List[Rule]:
    return [
        OrganImpairmentRule("RN001", Organ.RENAL, "metformin", Severity.ABSOLUTE, "Risk of lactic acidosis"),
        OrganImpairmentRule("RN002", Organ.RENAL, "nsaid", Severity.RELATIVE, "Further reduction in kidney function"),
        OrganImpairmentRule("RN003", Organ.RENAL, "ace inhibitor", Severity.CAUTION, "Monitor renal function closely"),
        OrganImpairmentRule("HP001", Organ.HEPATIC, "acetaminophen", Severity.RELATIVE, "Risk of hepatotoxicity"),
        OrganImpairmentRule("HP002", Organ.HEPATIC, "statin", Severity.CAUTION, "Monitor liver enzymes"),
        OrganImpairmentRule("HP003", Organ.HEPATIC, "warfarin", Severity.CAUTION, "Altered metabolism"),
    ]


def build_default_catalog() -> RuleCatalog:
    """Build the built-in catalog."""
    rules: List[Rule] = _allergy_rules()
    rules.extend(_interaction_rules())
    rules.extend(_condition_rules())
    rules.extend(_age_rules())
    rules.extend(_pregnancy_rules())
    rules.extend(_organ_rules())

    catalog = RuleCatalog(version=BUILTIN_CATALOG_VERSION, rules=tuple(rules))
    logger.info(f"Built default rule catalog with {len(catalog)} rules")
    return catalog
