"""
Longitudinal Event Timeline & Analytics Engine

Aggregates one patient's Canonical Record (visit history, labs, imaging,
pathology, genomics, treatments, trials) into a chronologically ordered,
context-enriched event timeline and derives analytics from it:
biomarker trends, imaging response, treatment effectiveness, disease
trajectory and a heuristic outcomes-risk score.
"""

__version__ = "1.0.0"
