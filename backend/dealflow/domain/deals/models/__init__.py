"""Deal workflow models."""

from dealflow.domain.deals.models.deals import Deal, DealLineItem, DealVersion
from dealflow.domain.deals.models.documents import DealDocument, DispatchHandoff

__all__ = [
	"Deal",
	"DealVersion",
	"DealLineItem",
	"DealDocument",
	"DispatchHandoff",
]
