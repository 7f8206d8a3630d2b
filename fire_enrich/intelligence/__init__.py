"""Discovery, reconciliation and caching for row enrichment."""
