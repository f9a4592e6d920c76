"""
Routing of inbound messages to agents via priority-ordered bindings.
"""

from .router import MessageRouter, RoutingContext, RoutingResult, specificity_score

__all__ = ["MessageRouter", "RoutingContext", "RoutingResult", "specificity_score"]
