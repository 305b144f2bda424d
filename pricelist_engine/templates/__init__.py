"""Template matching, scoring and adaptation."""
from pricelist_engine.templates.matcher import TemplateMatcher, default_templates
from pricelist_engine.templates.scoring import calculate_template_score

__all__ = ["TemplateMatcher", "calculate_template_score", "default_templates"]
