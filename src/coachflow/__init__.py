"""Coachflow - conversational stage-progression engine for project design.

This package provides the core functionality for co-authoring a multi-stage
project plan through a guided free-text conversation: stage gating, intent
classification, suggestion tracking, input-quality assessment, and the
journey/deliverables negotiation micro-flows.
"""

__version__ = "0.1.0"
