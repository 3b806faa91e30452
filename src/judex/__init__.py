"""
judex - Judgment Extraction

Hybrid rule-based and LLM-based extraction of dates, parties, amounts,
legal clauses and facts from Chinese court judgments.
"""

__version__ = "0.1.0"
