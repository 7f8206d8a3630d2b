"""
fire-enrich: multi-source company enrichment for tabular contact data.

Resolves the company behind each email, fans out to data providers and web
research, reconciles their answers per requested field and streams results
back row by row.
"""

__version__ = "0.3.0"
