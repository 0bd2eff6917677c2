"""Tax notice ingestion: Content Understanding analysis, metadata tagging, verified relocation."""
