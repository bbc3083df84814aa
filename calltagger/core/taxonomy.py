"""
B2B sales taxonomy used to tag transcript chunks.

Each topic key belongs to exactly one funnel stage. The tables here are the
single source of truth for tag validation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class FunnelStage(Enum):
    """Top-level funnel stage of a tag."""
    TOFU = "TOFU"            # Awareness & education
    MOFU = "MOFU"            # Consideration & evaluation
    BOFU = "BOFU"            # Decision & purchase
    POST_SALE = "POST_SALE"  # Retention, expansion & advocacy
    INTERNAL = "INTERNAL"    # Internal audience
    VERTICAL = "VERTICAL"    # Segment cuts


STAGE_TOPICS: Dict[FunnelStage, Tuple[str, ...]] = {
    FunnelStage.TOFU: (
        "industry_trend_validation",
        "problem_challenge_identification",
        "digital_transformation_modernization",
        "regulatory_compliance_challenges",
        "market_expansion",
        "thought_leadership_cocreation",
    ),
    FunnelStage.MOFU: (
        "product_capability_deepdive",
        "competitive_displacement",
        "integration_interoperability",
        "implementation_onboarding",
        "security_compliance_governance",
        "customization_configurability",
        "multi_product_cross_sell",
        "partner_ecosystem_solution",
        "total_cost_of_ownership",
        "pilot_to_production",
    ),
    FunnelStage.BOFU: (
        "roi_financial_outcomes",
        "quantified_operational_metrics",
        "executive_strategic_impact",
        "risk_mitigation_continuity",
        "deployment_speed",
        "vendor_selection_criteria",
        "procurement_experience",
    ),
    FunnelStage.POST_SALE: (
        "renewal_partnership_evolution",
        "upsell_cross_sell_expansion",
        "customer_success_support",
        "training_enablement_adoption",
        "community_advisory_participation",
        "co_innovation_product_feedback",
        "change_management_champion_dev",
        "scaling_across_org",
        "platform_governance_coe",
    ),
    FunnelStage.INTERNAL: (
        "sales_enablement",
        "lessons_learned_implementation",
        "cross_functional_collaboration",
        "voice_of_customer_product",
        "pricing_packaging_validation",
        "churn_save_winback",
        "deal_anatomy",
        "customer_health_sentiment",
        "reference_ability_development",
        "internal_process_improvement",
    ),
    FunnelStage.VERTICAL: (
        "industry_specific_usecase",
        "company_size_segment",
        "persona_specific_framing",
        "geographic_regional_variation",
        "regulated_vs_unregulated",
        "public_sector_government",
    ),
}

# Reverse index: topic -> owning stage
TOPIC_STAGE: Dict[str, FunnelStage] = {
    topic: stage for stage, topics in STAGE_TOPICS.items() for topic in topics
}

ALL_TOPICS: Tuple[str, ...] = tuple(TOPIC_STAGE)

@dataclass(frozen=True)
class TaxonomyTag:
    """
    A single classification of a chunk.

    Attributes:
        funnel_stage: Funnel stage the topic belongs to
        topic: Topic key from STAGE_TOPICS
        confidence: 0.0-1.0 (raw or calibrated)
    """
    funnel_stage: FunnelStage
    topic: str
    confidence: float

    @property
    def key(self) -> Tuple[FunnelStage, str]:
        return (self.funnel_stage, self.topic)

    def to_dict(self) -> Dict:
        return {
            "funnel_stage": self.funnel_stage.value,
            "topic": self.topic,
            "confidence": self.confidence,
        }


def parse_stage(value) -> FunnelStage:
    """
    Convert a raw stage value to a FunnelStage.

    Matching is exact: "BOFU" is a stage, " bofu " is not.

    Raises:
        ValueError: If the value is not a known stage
    """
    if isinstance(value, FunnelStage):
        return value
    return FunnelStage(value)


def is_valid_tag(stage, topic) -> bool:
    """True if topic is in the taxonomy and owned by stage."""
    if not isinstance(topic, str):
        return False
    try:
        stage = parse_stage(stage)
    except ValueError:
        return False
    return TOPIC_STAGE.get(topic) is stage
