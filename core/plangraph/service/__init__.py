"""Service payloads compiled into executable plans."""

from plangraph.service.bridge import PREFETCH_KEY, ServicePlan, ServicePlanBuilder
from plangraph.service.prefetch import prefetch_many

__all__ = ["PREFETCH_KEY", "ServicePlan", "ServicePlanBuilder", "prefetch_many"]
